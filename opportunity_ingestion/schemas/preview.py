from pydantic import BaseModel, Field


class LocationDetails(BaseModel):
    city: str = ""
    state: str = ""


class PreviewDocument(BaseModel):
    title: str | None = None
    url: str | None = None
    type: str | None = None


class PreviewContact(BaseModel):
    name: str | None = None
    role: str | None = None
    organization: str | None = None
    email: list[str] = Field(default_factory=list)
    phone: list[str] = Field(default_factory=list)


class PreviewContacts(BaseModel):
    emails: list[str] = Field(default_factory=list)
    phones: list[str] = Field(default_factory=list)


class PreviewMeta(BaseModel):
    summary: str | None = None
    description: str | None = None
    probability: float | None = None
    risk_level: str | None = None
    expected_rfp_date: str | None = None
    deadline: str | None = None
    market_sector: str | None = None
    contacts: PreviewContacts = Field(default_factory=PreviewContacts)
    tags: list[str] = Field(default_factory=list)
    source_url: str | None = None
    overview: str | None = None
    scope_summary: str | None = None
    scope_items: list[str] = Field(default_factory=list)
    documents: list[PreviewDocument] = Field(default_factory=list)
    enriched_contacts: list[PreviewContact] = Field(default_factory=list)


class DraftDefaults(BaseModel):
    """Values used to pre-populate the promotion form for a single record."""

    company_website: str = ""
    opportunity_name: str = ""
    client_name: str = ""
    selected_account: str = ""
    location: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    project_value: str = ""
    sales_stage: str = ""
    market_sector: str = ""
    date: str = ""
    project_description: str = ""
    contact_phone: str = ""


class PromotionForm(DraftDefaults):
    """User-edited promotion form submitted back for the two-phase commit."""

    reviewer_notes: str = ""
