# Importing every model registers it on Base.metadata (Alembic, create_all)
from whisperlog.models.user import Otp, User
from whisperlog.models.user_format import UserFormat
from whisperlog.models.processed_content import ProcessedContent

__all__ = ["User", "Otp", "UserFormat", "ProcessedContent"]
