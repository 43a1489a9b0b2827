from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from app.models.booking import Booking
from app.services.booking_service import EmergencyContact, TravelerInput


class TravelerIn(BaseModel):
    # name/type/age are checked by the booking service so bad travelers map to 400
    name: str
    type: str = "adult"
    age: Optional[int] = None
    passportNumber: str = ""
    nationality: str = ""
    dietaryRequirements: str = ""

    def to_input(self) -> TravelerInput:
        return TravelerInput(
            name=self.name,
            type=self.type,
            age=self.age,
            passport_number=self.passportNumber,
            nationality=self.nationality,
            dietary_requirements=self.dietaryRequirements,
        )


class EmergencyContactIn(BaseModel):
    name: str
    phone: str = ""
    relationship: str = ""


class BookingCreate(BaseModel):
    catalogItemId: str
    startDate: date
    travelers: List[TravelerIn] = []
    emergencyContact: Optional[EmergencyContactIn] = None
    specialRequests: Optional[str] = None

    def traveler_inputs(self) -> list[TravelerInput]:
        return [t.to_input() for t in self.travelers]

    def emergency_contact(self) -> EmergencyContact | None:
        c = self.emergencyContact
        return EmergencyContact(name=c.name, phone=c.phone, relationship=c.relationship) if c else None


class CancelIn(BaseModel):
    reason: str = ""


class StatusUpdateIn(BaseModel):
    status: str


class NoteIn(BaseModel):
    content: str = Field(min_length=1)


class ManualPaymentIn(BaseModel):
    reference: str = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    method: str = "bank_transfer"


class RefundIn(BaseModel):
    amount: Optional[Decimal] = Field(default=None, gt=0)


class TravelerOut(BaseModel):
    name: str
    type: str
    age: Optional[int] = None
    passportNumber: str = ""
    nationality: str = ""
    dietaryRequirements: str = ""


class NoteOut(BaseModel):
    content: str
    author: str
    createdAt: datetime


class TravelerCounts(BaseModel):
    adults: int = 0
    children: int = 0
    infants: int = 0


class PricingOut(BaseModel):
    basePrice: Decimal
    subtotal: Decimal
    taxes: Decimal
    totalAmount: Decimal
    currency: str


class PaymentOut(BaseModel):
    status: str
    method: Optional[str] = None
    transactionId: Optional[str] = None
    paidAmount: Decimal = Decimal("0")
    paymentDate: Optional[datetime] = None
    refundAmount: Decimal = Decimal("0")
    refundDate: Optional[datetime] = None


class BookingOut(BaseModel):
    id: str
    bookingNumber: str
    customerId: str
    catalogItemId: str
    slotId: Optional[str] = None
    startDate: date
    endDate: date
    travelers: List[TravelerOut]
    numberOfTravelers: TravelerCounts
    totalTravelers: int
    pricing: PricingOut
    payment: PaymentOut
    status: str
    notes: List[NoteOut] = []
    specialRequests: Optional[str] = None
    emergencyContact: Optional[EmergencyContactIn] = None
    version: int
    createdAt: datetime

    @classmethod
    def from_booking(cls, b: Booking) -> "BookingOut":
        counts = TravelerCounts(
            adults=sum(1 for t in b.travelers if t.type == "adult"),
            children=sum(1 for t in b.travelers if t.type == "child"),
            infants=sum(1 for t in b.travelers if t.type == "infant"),
        )
        contact = None
        if b.emergency_contact_name:
            contact = EmergencyContactIn(
                name=b.emergency_contact_name,
                phone=b.emergency_contact_phone or "",
                relationship=b.emergency_contact_relationship or "",
            )
        return cls(
            id=b.id,
            bookingNumber=b.booking_number,
            customerId=b.customer_id,
            catalogItemId=b.catalog_item_id,
            slotId=b.slot_id,
            startDate=b.start_date,
            endDate=b.end_date,
            travelers=[
                TravelerOut(name=t.name, type=t.type, age=t.age, passportNumber=t.passport_number or "",
                            nationality=t.nationality or "", dietaryRequirements=t.dietary_requirements or "")
                for t in b.travelers
            ],
            numberOfTravelers=counts,
            totalTravelers=b.total_travelers,
            pricing=PricingOut(basePrice=b.base_price, subtotal=b.subtotal, taxes=b.taxes,
                               totalAmount=b.total_amount, currency=b.currency),
            payment=PaymentOut(
                status=b.payment_status,
                method=b.payment_method,
                transactionId=b.transaction_id,
                paidAmount=b.paid_amount or Decimal("0"),
                paymentDate=b.payment_date,
                refundAmount=b.refund_amount or Decimal("0"),
                refundDate=b.refund_date,
            ),
            status=b.status,
            notes=[NoteOut(content=n.content, author=n.author, createdAt=n.created_at) for n in b.notes],
            specialRequests=b.special_requests,
            emergencyContact=contact,
            version=b.version,
            createdAt=b.created_at,
        )
