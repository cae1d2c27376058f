from pydantic import BaseModel


class UserContext(BaseModel):
    """Tenant the current request acts for.

    Passed explicitly into every store read; all documents are scoped by
    their ``user_id`` field.
    """
    user_id: str

    def scoped(self, query: dict) -> dict:
        """Return a copy of ``query`` restricted to this tenant"""
        return {**query, "user_id": self.user_id}
