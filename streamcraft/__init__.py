"""
StreamCraft - playlist based RTMP live streaming with scheduling.
"""
