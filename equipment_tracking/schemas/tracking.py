from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict


class MovementDescriptors(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    locationID: Optional[int] = None
    sectorID: Optional[int] = None
    responsiblePerson: Optional[str] = None
    deliveredBy: Optional[str] = None
    receivedBy: Optional[str] = None
    notes: Optional[str] = None


class MovementRequest(MovementDescriptors):
    equipmentID: int
    status: str
    quantity: int


class MovementEdit(MovementDescriptors):
    status: str
    quantity: int


class RetireRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    condition: Literal["good", "damaged", "bom", "danificado"]
    responsible: Optional[str] = None
    notes: Optional[str] = None


class ScanRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    rawValue: str
