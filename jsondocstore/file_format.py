from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field

FILE_VERSION = 1
VERSION_KEY = "__version__"


class UnsupportedFileVersion(ValueError):
    pass


class CollectionFileRecord(BaseModel):
    """
    Mirrors the on-disk collection file:
      { "__version__": 1, "storeData": { "<id>": {...} }, "metaData": {...} }

    Legacy files are a bare { "<id>": {...} } mapping with no version key.
    """

    model_config = ConfigDict(populate_by_name=True)

    file_version: int = Field(default=FILE_VERSION, alias=VERSION_KEY)
    store_data: dict[str, dict[str, Any]] = Field(default_factory=dict, alias="storeData")
    meta_data: dict[str, Any] = Field(default_factory=dict, alias="metaData")

    @classmethod
    def from_disk_doc(cls, doc: Mapping[str, Any]) -> "CollectionFileRecord":
        if VERSION_KEY not in doc:
            # Legacy migration: the whole file is the id -> document mapping.
            return cls(store_data=_documents_only(doc), meta_data={})

        version = doc[VERSION_KEY]
        if version != FILE_VERSION or isinstance(version, bool):
            raise UnsupportedFileVersion(f"unsupported collection file version: {version!r}")

        store = doc.get("storeData")
        meta = doc.get("metaData")
        return cls(
            file_version=FILE_VERSION,
            store_data=_documents_only(store) if isinstance(store, Mapping) else {},
            meta_data=dict(meta) if isinstance(meta, Mapping) else {},
        )

    def to_disk_doc(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def _documents_only(raw: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    # Anything that is not an object cannot be a document; drop it rather than fail the load.
    return {str(k): dict(v) for k, v in raw.items() if isinstance(v, Mapping)}
