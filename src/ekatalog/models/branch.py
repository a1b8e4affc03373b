# src/ekatalog/models/branch.py

from typing import Optional

from pydantic import BaseModel


class Branch(BaseModel):
    id: int
    name: str
    address: Optional[str] = None
    daerah: Optional[str] = None
    wilayah: Optional[str] = None
    pulau: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None

    class Config:
        extra = "allow"
