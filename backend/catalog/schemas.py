from datetime import date, datetime
from typing import Optional, Any, Dict, List, Literal
from pydantic import BaseModel, EmailStr, ConfigDict, Field, model_validator
from uuid import UUID


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    full_name: Optional[str] = None
    orcid_id: Optional[str] = None


class UserOut(BaseModel):
    id: UUID
    email: EmailStr
    full_name: Optional[str]
    orcid_id: Optional[str] = None
    is_admin: bool = False
    model_config = ConfigDict(from_attributes=True)


class UserUpdate(BaseModel):
    full_name: Optional[str] = None
    orcid_id: Optional[str] = None


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class InstitutionCreate(BaseModel):
    title: str
    country: Optional[str] = None
    web_page: Optional[str] = None


class InstitutionOut(InstitutionCreate):
    id: UUID
    model_config = ConfigDict(from_attributes=True)


class ProjectCreate(BaseModel):
    title: str
    description: Optional[str] = None
    web_page: Optional[str] = None
    programme_id: Optional[UUID] = None
    institution_id: Optional[UUID] = None


class ProjectUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    web_page: Optional[str] = None
    programme_id: Optional[UUID] = None


class ProjectOut(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    web_page: Optional[str] = None
    programme_id: Optional[UUID] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class MembershipCreate(BaseModel):
    user_id: UUID
    institution_id: UUID


class MembershipUpdate(BaseModel):
    has_left: bool


class MembershipOut(BaseModel):
    id: UUID
    user_id: UUID
    project_id: UUID
    institution_id: UUID
    time_left_at: Optional[datetime] = None
    has_left: bool


class ProgrammeCreate(BaseModel):
    title: str
    description: Optional[str] = None
    web_page: Optional[str] = None
    funding_details: Optional[str] = None
    project_ids: List[UUID] = []
    administrator_ids: Optional[List[UUID]] = None


class ProgrammeUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    web_page: Optional[str] = None
    funding_details: Optional[str] = None
    project_ids: Optional[List[UUID]] = None
    administrator_ids: Optional[List[UUID]] = None


class ProgrammeReject(BaseModel):
    reason: str


class ProgrammeOut(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    web_page: Optional[str] = None
    funding_details: Optional[str] = None
    is_activated: bool
    activation_rejection_reason: Optional[str] = None
    rejected: bool
    project_ids: List[UUID] = []
    administrator_ids: List[UUID] = []

    @model_validator(mode="before")
    @classmethod
    def _from_record(cls, value):
        if hasattr(value, "__table__"):
            return {
                "id": value.id,
                "title": value.title,
                "description": value.description,
                "web_page": value.web_page,
                "funding_details": value.funding_details,
                "is_activated": bool(value.is_activated),
                "activation_rejection_reason": value.activation_rejection_reason,
                "rejected": value.rejected,
                "project_ids": [p.id for p in value.projects],
                "administrator_ids": [u.id for u in value.administrators],
            }
        return value


class SharingPermission(BaseModel):
    contributor_type: Literal["Project", "User"]
    contributor_id: UUID
    access: Literal["no_access", "view", "download", "edit", "manage"] = "view"


class Sharing(BaseModel):
    scope: Literal["private", "all_users", "everyone"] = "private"
    access: Literal["no_access", "view", "download", "edit", "manage"] = "view"
    permissions: List[SharingPermission] = []


class PolicyOut(BaseModel):
    sharing_scope: str
    access: str
    permissions: List[Dict[str, Any]] = []


class SampleAttributeIn(BaseModel):
    title: str
    attribute_type: Literal["String", "Text", "Integer", "Float", "Boolean", "Date", "SEEK Sample"] = "String"
    unit_symbol: Optional[str] = None
    required: bool = False
    is_title: bool = False
    linked_sample_type_id: Optional[UUID] = None

    @model_validator(mode="after")
    def _linked_type_needed(self):
        if self.attribute_type == "SEEK Sample" and self.linked_sample_type_id is None:
            raise ValueError("SEEK Sample attributes need a linked sample type")
        return self


class SampleTypeCreate(BaseModel):
    title: str
    description: Optional[str] = None
    uploaded_template: bool = False
    tags: List[str] = []
    sample_attributes: List[SampleAttributeIn] = Field(min_length=1)


class SampleCreate(BaseModel):
    sample_type_id: UUID
    title: Optional[str] = None
    description: Optional[str] = None
    data: Dict[str, Any] = {}
    project_ids: List[UUID] = []
    sharing: Optional[Sharing] = None


class SampleUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    project_ids: Optional[List[UUID]] = None
    sharing: Optional[Sharing] = None


class SampleOut(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    sample_type_id: UUID
    data: Dict[str, Any] = {}
    contributor_id: Optional[UUID] = None
    project_ids: List[UUID] = []
    policy: PolicyOut


class StrainCreate(BaseModel):
    title: str
    description: Optional[str] = None
    organism: Optional[str] = None
    provider_name: Optional[str] = None
    comment: Optional[str] = None
    project_ids: List[UUID] = []
    sharing: Optional[Sharing] = None


class StrainOut(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    organism: Optional[str] = None
    provider_name: Optional[str] = None
    comment: Optional[str] = None
    contributor_id: Optional[UUID] = None
    model_config = ConfigDict(from_attributes=True)


class PublicationCreate(BaseModel):
    pubmed_id: Optional[int] = None
    doi: Optional[str] = None
    title: Optional[str] = None
    abstract: Optional[str] = None
    journal: Optional[str] = None
    published_date: Optional[date] = None
    authors: List[str] = []
    project_ids: List[UUID] = Field(min_length=1)
    assay_ids: List[UUID] = []
    sharing: Optional[Sharing] = None

    @model_validator(mode="after")
    def _source_given(self):
        if self.pubmed_id is None and not self.doi and not self.title:
            raise ValueError("Provide a PubMed id, a DOI or the publication details")
        return self


class PublicationOut(BaseModel):
    id: UUID
    title: str
    pubmed_id: Optional[int] = None
    doi: Optional[str] = None
    abstract: Optional[str] = None
    journal: Optional[str] = None
    published_date: Optional[date] = None
    authors: List[str] = []
    project_ids: List[UUID] = []
    assay_ids: List[UUID] = []


class PubMedQuery(BaseModel):
    query: str
    limit: int = 5


class PubMedArticle(BaseModel):
    id: str
    title: str


class DoiLookup(BaseModel):
    doi: str


class NodeCreate(BaseModel):
    title: str
    description: Optional[str] = None
    project_ids: List[UUID] = Field(min_length=1)
    content_url: Optional[str] = None
    original_filename: Optional[str] = None
    content_type: Optional[str] = None
    sharing: Optional[Sharing] = None


class NodeVersionCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    revision_comments: Optional[str] = None
    content_url: Optional[str] = None
    original_filename: Optional[str] = None
    content_type: Optional[str] = None


class ContentBlobOut(BaseModel):
    url: Optional[str] = None
    original_filename: Optional[str] = None
    content_type: Optional[str] = None
    asset_version: int
    model_config = ConfigDict(from_attributes=True)


class NodeVersionOut(BaseModel):
    version: int
    title: str
    description: Optional[str] = None
    revision_comments: Optional[str] = None
    doi: Optional[str] = None
    content_blob: Optional[ContentBlobOut] = None
    is_github_cwl: bool = False


class NodeOut(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    version: int
    contributor_id: Optional[UUID] = None
    project_ids: List[UUID] = []
    versions: List[NodeVersionOut] = []


class ScaleCreate(BaseModel):
    key: str
    title: str
    position: int = 0


class ScaleOut(ScaleCreate):
    id: UUID
    model_config = ConfigDict(from_attributes=True)


class AssetScalesUpdate(BaseModel):
    scale_ids: List[UUID]


class ActivityLogOut(BaseModel):
    id: UUID
    user_id: Optional[UUID] = None
    action: str
    controller: Optional[str] = None
    target_type: str | None = None
    target_id: UUID | None = None
    details: Dict[str, Any] = {}
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ActivityReportItem(BaseModel):
    controller: Optional[str] = None
    action: str
    count: int


class AssayAssetLink(BaseModel):
    asset_type: Literal["Sample", "Strain", "Publication", "Node"]
    asset_id: UUID
    direction: Optional[Literal["input", "output"]] = None


class AssayAssetOut(BaseModel):
    assay_id: UUID
    asset_type: str
    asset_id: UUID
    direction: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)
