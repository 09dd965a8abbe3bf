from sqlmodel import SQLModel, Field


class IdSequence(SQLModel, table=True):
    """One counter row per human-readable identifier sequence."""

    name: str = Field(primary_key=True)
    prefix: str
    last_value: int
