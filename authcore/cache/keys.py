# authcore/cache/keys.py
# Formatos das chaves no Redis. Devem permanecer estáveis entre rotações.


class SessionCacheKeys:
    @staticmethod
    def user_session(user_id: str) -> str:
        return f"session:{user_id}"

    @staticmethod
    def refresh_token(token_hash: str) -> str:
        return f"refresh-token:{token_hash}"

    @staticmethod
    def revoked_token(token_hash: str) -> str:
        return f"revoked-token:{token_hash}"

    @staticmethod
    def token_family(family: str) -> str:
        return f"token-family:{family}"

    @staticmethod
    def revoked_family(family: str) -> str:
        return f"revoked-family:{family}"

    @staticmethod
    def user_tokens(user_id: str) -> str:
        return f"user-tokens:{user_id}"
