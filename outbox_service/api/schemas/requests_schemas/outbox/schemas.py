from fastapi import Query
from pydantic import BaseModel


class DeadLetterQuery(BaseModel):
    limit: int = 100

    @classmethod
    def as_query(
        cls,
        limit: int = Query(100, ge=1, le=1000),
    ) -> "DeadLetterQuery":
        return cls(limit=limit)
