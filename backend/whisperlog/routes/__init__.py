"""
WhisperLog Backend — API Routes Package
=========================================

Route Inventory:
    - auth.py:               /auth/register, /auth/login, /auth/profile,
                             /auth/forgot-password, /auth/reset-password
    - user_formats.py:       /user-formats, /user-formats/{id}
    - content_processing.py: /content-processing/process, /content-processing,
                             /content-processing/stats,
                             /content-processing/format/{formatId},
                             /content-processing/{id}
    - email.py:              /email/test-connection
    - health.py:             /health

Routes stay thin: parse the request, call a service from app.state, return
the response model. Business rules live in services/.
"""
