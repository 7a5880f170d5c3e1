"""
Face Recognition Platform - Live Face Recognition and Registered-Face Q&A

A Python service that registers faces by name, recognizes them in a live
camera stream and answers questions about the registered people.
Integrates with a hosted Supabase backend and provides MJPEG video streaming.
"""

__version__ = "1.0.0"
__author__ = "Face Recognition Platform Team"
