"""Test package for the QuizForge session engine.

This package contains unit tests for the bank model, the four mode sessions,
persistence and statistics, plus scripted headless runs through the session
controller.  Time is driven by a fake clock, so nothing waits on the wall
clock.  To run these tests, execute ``pytest`` from the project root.
"""
