"""Request/response bodies exchanged between the checkout services."""

from pydantic import BaseModel, ConfigDict, Field


class _Body(BaseModel):
    # Missing fields fall back to empty values, unknown fields are ignored,
    # wrong-typed values ("12", true, 12.0 for an int) are rejected.
    model_config = ConfigDict(frozen=True, extra="ignore", strict=True)


class Order(_Body):
    name: str = ""
    address: str = ""
    payment: str = ""
    shipping: str = ""
    basket: list[str] = []


class PaymentRequest(_Body):
    name: str = ""
    amount: int = 0
    method: str = ""


class ShippingRequest(_Body):
    address: str = ""
    vendor: str = ""
    basket: list[str] = []


class VendorPayment(_Body):
    name: str = ""
    amount: int = 0


class VendorShipment(_Body):
    address: str = ""
    basket: list[str] = []


class TraceIdResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    trace_id: str = Field(alias="trace-id")

    def body(self) -> dict:
        return self.model_dump(by_alias=True)
