# workops_offline/workops_api/schemas.py
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, model_validator


# --- Response envelopes ---
class Pagination(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    has_more: bool = Field(False, alias="hasMore")
    current_page: Optional[int] = Field(None, alias="currentPage")
    total_pages: Optional[int] = Field(None, alias="totalPages")


class ApiEnvelope(BaseModel):
    """`{success, <entity>: {...}, message?}`; the entity payload lands in the model's extra fields."""
    model_config = ConfigDict(extra='allow')

    success: bool = False
    message: Optional[str] = None
    pagination: Optional[Pagination] = None

    def payload(self, key: str) -> Any:
        return (self.model_extra or {}).get(key)

    def record(self, key: str) -> Optional[Dict[str, Any]]:
        doc = self.payload(key)
        return doc if isinstance(doc, dict) else None

    def record_id(self, key: str) -> Optional[str]:
        doc = self.record(key)
        if doc is None or doc.get("_id") is None:
            return None
        return str(doc["_id"])

    def records(self, key: str) -> List[Dict[str, Any]]:
        docs = self.payload(key)
        if not isinstance(docs, list):
            return []
        return [doc for doc in docs if isinstance(doc, dict)]


# --- Request bodies ---
class StockUpdateRequest(BaseModel):
    """Body for `POST /api/inventory/item/{id}/stock`: either a quantity or a list of serial numbers."""
    model_config = ConfigDict(populate_by_name=True)

    stock_qty: Optional[int] = Field(None, alias="stockQty", gt=0)
    serial_numbers: Optional[List[str]] = Field(None, alias="serialNumbers", min_length=1)

    @model_validator(mode="after")
    def _exactly_one(self) -> "StockUpdateRequest":
        if (self.stock_qty is None) == (self.serial_numbers is None):
            raise ValueError("Provide either stockQty or serialNumbers")
        return self

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
