"""
Test doubles for the WebRTC engine and audio devices.
"""
