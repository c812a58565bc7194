"""Test package for the reaction battery.

Engine tests drive the tasks with a fake clock so every timer fires
deterministically. The UI smoke tests run headlessly using pygame's dummy
video driver. To run these tests, execute ``pytest`` from the project root.
"""
