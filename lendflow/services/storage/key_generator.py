import time
from uuid import UUID, uuid4


class KeyGenerator:
    @staticmethod
    def generate_kyc_key(user_id: UUID | str, doc_type: str, *, nonce: UUID | None = None) -> str:
        """Globally unique storage key: ``{user_id}/{doc_type}/{uuid}-{epoch_ms}``."""
        if not user_id:
            raise ValueError("user_id required for kyc document key")
        if not doc_type:
            raise ValueError("doc_type required for kyc document key")
        unique = nonce or uuid4()
        return f"{user_id}/{doc_type}/{unique}-{int(time.time() * 1000)}"
