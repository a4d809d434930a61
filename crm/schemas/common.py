from typing import Annotated
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Integer primary keys and quantity columns are 32-bit
MAX_ID = 2**31 - 1
MAX_QUANTITY = 1_000_000
MAX_STOCK = 2**31 - 1

# Money (minor units) and points columns are 64-bit; single values stay far
# below that so ledger sums cannot overflow
MAX_AMOUNT = 10**15
BIGINT_MAX = 2**63 - 1

Id = Annotated[int, Field(ge=1, le=MAX_ID)]
Amount = Annotated[int, Field(ge=0, le=MAX_AMOUNT)]


class APIModel(BaseModel):
    """
    Base for request and response bodies.

    JSON keys are camelCase on the wire; snake_case is also accepted on input.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
