from sqlmodel import Field, SQLModel


class StorageEntry(SQLModel, table=True):
    """One storage key and the full serialized table it holds."""

    key: str = Field(primary_key=True)
    value: str
