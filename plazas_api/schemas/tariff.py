# plazas_api/schemas/tariff.py
from pydantic import BaseModel
from typing import Optional


class TemplateTariffsOut(BaseModel):
    template_id: int
    template_name: str
    segment: Optional[str] = None
    prices: dict[str, float]        # billing unit → current price
