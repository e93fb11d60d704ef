# Services package init
"""
WhisperLog Backend — Services Layer
=====================================

What:  Business logic between the routes (HTTP) and the database.
Why:   Routes handle HTTP; services own the rules, so they can be tested
       against a session without a running app.
How:   One instance of each service is built at startup (see
       whisperlog.dependencies.build_services) and shared by all requests.
       Per-request state is passed in as arguments, never stored.

Service Inventory:
    - providers/: ProviderAdapter interface, Claude / OpenAI / Gemini adapters
                  and the ProviderRegistry that picks one per content type
    - prompting: formatting prompt and placeholder-leak detection
    - audio_service: base64 audio decoding and original-content storage
    - format_service: template store (FormatService)
    - content_service: processed-content store, history and stats
    - processing_service: the retrying orchestrator (ContentProcessingService)
    - auth_service / email_service: accounts, tokens, OTP reset, SMTP
"""
