"""
CanonicalRow model representing one normalized source record.
"""

import re

from pydantic import BaseModel, Field, field_validator

PERIOD_PATTERN = re.compile(r"^(19|20)\d{2}(0[1-9]|1[0-2])$")


class CanonicalRow(BaseModel):
    """
    Normalized, schema-fixed representation of one statement line.

    Attributes:
        file_id: File the row was ingested from
        row_number: 1-based ordinal of the record within the file
        catalog: Client code / catalog identifier
        client_name: Client display name
        period: YYYYMM income period or None
        metric: Income type used as the generic metric label
        value: Generic metric value (amount collected)
        content: Text that was embedded
        song_title: Work title
        artist: Performing artist
        composers: Composer credits
        source_name: Licensee / income source
        income_type: Income type name
        units: Unit count
        amount_collected: Gross amount collected
        royalty_payable: Net royalty payable
        isrc: Recording code
        embedding: Vector for content, attached after embedding
    """

    file_id: str
    row_number: int = Field(..., ge=1)
    catalog: str | None = None
    client_name: str | None = None
    period: str | None = None
    metric: str | None = None
    value: float | None = None
    content: str
    song_title: str | None = None
    artist: str | None = None
    composers: str | None = None
    source_name: str | None = None
    income_type: str | None = None
    units: float | None = None
    amount_collected: float | None = None
    royalty_payable: float | None = None
    isrc: str | None = None
    embedding: list[float] | None = None

    @field_validator("period")
    @classmethod
    def check_period_format(cls, v):
        """Period must be None or a valid YYYYMM string."""
        if v is not None and not PERIOD_PATTERN.match(v):
            raise ValueError(f"period must be YYYYMM, got {v!r}")
        return v

    def with_embedding(self, embedding: list[float]) -> "CanonicalRow":
        """Return a copy of this row carrying its embedding."""
        return self.model_copy(update={"embedding": list(embedding)})

    class Config:
        json_schema_extra = {
            "example": {
                "file_id": "3f9a9c1e-6a77-4c53-9a39-0ad2f0c5e0d4",
                "row_number": 1,
                "catalog": "100047",
                "period": "202312",
                "metric": "Streaming",
                "value": 1234.56,
                "content": "Client Code: 100047, Income Period: 202312, "
                           "Income Type Name: Streaming, Amount Collected: $1,234.56",
                "income_type": "Streaming",
                "amount_collected": 1234.56,
            }
        }
