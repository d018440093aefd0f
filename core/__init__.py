"""Core application of the blood bank backend.

Models, services, the rejection workflow and the HTTP and WebSocket
surfaces that hospitals and blood banks use to exchange blood requests.
"""
