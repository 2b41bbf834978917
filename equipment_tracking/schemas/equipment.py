from typing import Optional

from pydantic import BaseModel, ConfigDict


class EquipmentUpsert(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = None
    serialNumber: Optional[str] = None
    categoryID: Optional[int] = None
    binID: Optional[int] = None
    description: Optional[str] = None
    imageUrl: Optional[str] = None
    availableQuantity: Optional[int] = None


class CategoryCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    categoryName: str
    description: Optional[str] = None


class BinCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    binCode: str
    zone: Optional[str] = None
    description: Optional[str] = None


class LocationCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    locationName: str


class SectorCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    sectorName: str
