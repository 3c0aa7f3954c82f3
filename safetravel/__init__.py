"""
Safetravel API backend.

A FastAPI service for registering travellers, authenticating them through
Firebase Authentication and storing travel-safety testimonies in Firestore.
"""
