import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Text,
    event,
    inspect,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Session, declared_attr, relationship, validates

from .database import Base


def _utcnow():
    return datetime.now(timezone.utc)


# sharing scopes
PRIVATE = 0
ALL_USERS = 2
EVERYONE = 4

# access types, ordered by privilege
NO_ACCESS = 0
VISIBLE = 1
ACCESSIBLE = 2
EDITING = 3
MANAGING = 4


class User(Base):
    __tablename__ = "users"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    full_name = Column(String)
    orcid_id = Column(String)
    is_admin = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=_utcnow)

    memberships = relationship("GroupMembership", back_populates="user")
    administered_programmes = relationship(
        "Programme",
        secondary="programme_administrators",
        back_populates="administrators",
    )

    @property
    def title(self) -> str:
        return self.full_name or self.email

    @property
    def current_memberships(self):
        return [m for m in self.memberships if not m.has_left]

    @property
    def projects(self):
        seen = []
        for membership in self.current_memberships:
            project = membership.work_group.project
            if project not in seen:
                seen.append(project)
        return seen

    def is_programme_administrator(self, programme) -> bool:
        return programme in self.administered_programmes


class Institution(Base):
    __tablename__ = "institutions"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, unique=True, nullable=False)
    country = Column(String)
    web_page = Column(String)
    created_at = Column(DateTime, default=_utcnow)

    work_groups = relationship("WorkGroup", back_populates="institution")


class ProgrammeAdministrator(Base):
    __tablename__ = "programme_administrators"
    programme_id = Column(UUID(as_uuid=True), ForeignKey("programmes.id"), primary_key=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), primary_key=True)


class Programme(Base):
    __tablename__ = "programmes"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, unique=True, nullable=False)
    description = Column(Text)
    web_page = Column(String)
    funding_details = Column(Text)
    is_activated = Column(Boolean, default=False)
    activation_rejection_reason = Column(Text)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    # deleting a programme detaches its projects
    projects = relationship("Project", back_populates="programme")
    administrators = relationship(
        "User",
        secondary="programme_administrators",
        back_populates="administered_programmes",
    )

    @property
    def people(self):
        people = []
        for project in self.projects:
            for person in project.people:
                if person not in people:
                    people.append(person)
        return people

    @property
    def institutions(self):
        institutions = []
        for project in self.projects:
            for institution in project.institutions:
                if institution not in institutions:
                    institutions.append(institution)
        return institutions

    @property
    def rejected(self) -> bool:
        return not (self.activation_rejection_reason is None or self.is_activated)

    def can_manage(self, user) -> bool:
        return bool(user and (user.is_admin or user.is_programme_administrator(self)))

    def can_edit(self, user) -> bool:
        return inspect(self).transient or self.can_manage(user)

    def can_delete(self, user) -> bool:
        return bool(user and user.is_admin)

    def can_activate(self, user) -> bool:
        return bool(user and user.is_admin and not self.is_activated)

    def activate(self, user) -> bool:
        if not self.can_activate(user):
            return False
        self.is_activated = True
        self.activation_rejection_reason = None
        return True

    @classmethod
    def can_create(cls, user, *, enabled: bool, allow_user_creation: bool) -> bool:
        if not enabled or user is None:
            return False
        return bool(user.is_admin or allow_user_creation)


class Project(Base):
    __tablename__ = "projects"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, unique=True, nullable=False)
    description = Column(Text)
    web_page = Column(String)
    programme_id = Column(UUID(as_uuid=True), ForeignKey("programmes.id"), nullable=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    programme = relationship("Programme", back_populates="projects")
    work_groups = relationship("WorkGroup", back_populates="project", cascade="all, delete-orphan")

    @property
    def institutions(self):
        return [wg.institution for wg in self.work_groups]

    @property
    def people(self):
        people = []
        for wg in self.work_groups:
            for membership in wg.memberships:
                if not membership.has_left and membership.user not in people:
                    people.append(membership.user)
        return people


class WorkGroup(Base):
    __tablename__ = "work_groups"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False)
    institution_id = Column(UUID(as_uuid=True), ForeignKey("institutions.id"), nullable=False)

    project = relationship("Project", back_populates="work_groups")
    institution = relationship("Institution", back_populates="work_groups")
    memberships = relationship("GroupMembership", back_populates="work_group", cascade="all, delete-orphan")

    __table_args__ = (sa.UniqueConstraint("project_id", "institution_id"),)


class GroupMembership(Base):
    __tablename__ = "group_memberships"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    work_group_id = Column(UUID(as_uuid=True), ForeignKey("work_groups.id"), nullable=False)
    time_left_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_utcnow)

    user = relationship("User", back_populates="memberships")
    work_group = relationship("WorkGroup", back_populates="memberships")

    @validates("work_group")
    def _validate_work_group(self, key, work_group):
        if work_group is None:
            raise ValueError("A workgroup is required")
        return work_group

    @property
    def project(self):
        return self.work_group.project if self.work_group else None

    @property
    def has_left(self) -> bool:
        if self.time_left_at is None:
            return False
        left_at = self.time_left_at
        if left_at.tzinfo is None:
            left_at = left_at.replace(tzinfo=timezone.utc)
        return left_at < _utcnow()

    @has_left.setter
    def has_left(self, yes: bool) -> None:
        self.time_left_at = _utcnow() if yes else None


class AuthLookupUpdateQueue(Base):
    __tablename__ = "auth_lookup_update_queues"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    priority = Column(Integer, default=0)
    created_at = Column(DateTime, default=_utcnow)


class AuthLookup(Base):
    __tablename__ = "auth_lookups"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    asset_type = Column(String, nullable=False)
    asset_id = Column(UUID(as_uuid=True), nullable=False)
    can_view = Column(Boolean, default=False)
    can_edit = Column(Boolean, default=False)
    can_manage = Column(Boolean, default=False)
    can_delete = Column(Boolean, default=False)

    __table_args__ = (sa.UniqueConstraint("user_id", "asset_type", "asset_id"),)


def _queue_members_for_lookup(connection, target) -> None:
    user_ids = {target.user_id}
    history = inspect(target).attrs.user_id.history
    user_ids.update(history.deleted or ())
    queue = AuthLookupUpdateQueue.__table__
    for user_id in user_ids:
        if user_id is None:
            continue
        connection.execute(
            queue.insert().values(id=uuid.uuid4(), user_id=user_id, priority=0, created_at=_utcnow())
        )
    session = Session.object_session(target)
    if session is not None:
        session.info["auth_lookup_pending"] = True


@event.listens_for(GroupMembership, "after_insert")
@event.listens_for(GroupMembership, "after_update")
@event.listens_for(GroupMembership, "after_delete")
def _membership_changed(mapper, connection, target):
    _queue_members_for_lookup(connection, target)


@event.listens_for(Session, "after_commit")
def _process_auth_lookup_queue(session):
    if session.info.pop("auth_lookup_pending", False):
        from .tasks import enqueue_auth_lookup_update

        enqueue_auth_lookup_update()


class Policy(Base):
    __tablename__ = "policies"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sharing_scope = Column(Integer, default=PRIVATE, nullable=False)
    access_type = Column(Integer, default=NO_ACCESS, nullable=False)

    permissions = relationship("Permission", back_populates="policy", cascade="all, delete-orphan")


class Permission(Base):
    __tablename__ = "permissions"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    policy_id = Column(UUID(as_uuid=True), ForeignKey("policies.id"), nullable=False)
    contributor_type = Column(String, nullable=False)
    contributor_id = Column(UUID(as_uuid=True), nullable=False)
    access_type = Column(Integer, default=VISIBLE, nullable=False)

    policy = relationship("Policy", back_populates="permissions")


class AssetProject(Base):
    __tablename__ = "asset_projects"
    asset_type = Column(String, primary_key=True)
    asset_id = Column(UUID(as_uuid=True), primary_key=True)
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id"), primary_key=True)


class Scale(Base):
    __tablename__ = "scales"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    key = Column(String, unique=True, nullable=False)
    title = Column(String, nullable=False)
    position = Column(Integer, default=0)


class AssetScale(Base):
    __tablename__ = "asset_scales"
    asset_type = Column(String, primary_key=True)
    asset_id = Column(UUID(as_uuid=True), primary_key=True)
    scale_id = Column(UUID(as_uuid=True), ForeignKey("scales.id"), primary_key=True)


class AssetMixin:
    """Columns shared by every contributed, policy-governed asset."""

    # asset types that can be placed on a scale
    scalable = False

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    @declared_attr
    def contributor_id(cls):
        return Column(UUID(as_uuid=True), ForeignKey("users.id"))

    @declared_attr
    def policy_id(cls):
        return Column(UUID(as_uuid=True), ForeignKey("policies.id"))

    @declared_attr
    def contributor(cls):
        return relationship("User")

    @declared_attr
    def policy(cls):
        return relationship("Policy")

    @property
    def asset_type(self) -> str:
        return type(self).__name__

    def state_allows_delete(self) -> bool:
        return True


class Investigation(AssetMixin, Base):
    __tablename__ = "investigations"
    scalable = True

    studies = relationship("Study", back_populates="investigation")

    def state_allows_delete(self) -> bool:
        return not self.studies


class Study(AssetMixin, Base):
    __tablename__ = "studies"
    scalable = True
    investigation_id = Column(UUID(as_uuid=True), ForeignKey("investigations.id"), nullable=False)

    investigation = relationship("Investigation", back_populates="studies")
    assays = relationship("Assay", back_populates="study")

    def state_allows_delete(self) -> bool:
        return not self.assays


class Assay(AssetMixin, Base):
    __tablename__ = "assays"
    scalable = True
    study_id = Column(UUID(as_uuid=True), ForeignKey("studies.id"), nullable=False)
    assay_type_label = Column(String)
    technology_type_label = Column(String)

    study = relationship("Study", back_populates="assays")
    assay_assets = relationship("AssayAsset", back_populates="assay", cascade="all, delete-orphan")


class AssayAsset(Base):
    __tablename__ = "assay_assets"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    assay_id = Column(UUID(as_uuid=True), ForeignKey("assays.id"), nullable=False)
    asset_type = Column(String, nullable=False)
    asset_id = Column(UUID(as_uuid=True), nullable=False)
    direction = Column(String)

    assay = relationship("Assay", back_populates="assay_assets")

    __table_args__ = (sa.UniqueConstraint("assay_id", "asset_type", "asset_id"),)


class SampleType(Base):
    __tablename__ = "sample_types"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, unique=True, nullable=False)
    description = Column(Text)
    uploaded_template = Column(Boolean, default=False)
    tags = Column(JSON, default=list)
    contributor_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    created_at = Column(DateTime, default=_utcnow)

    sample_attributes = relationship(
        "SampleAttribute",
        back_populates="sample_type",
        cascade="all, delete-orphan",
        order_by="SampleAttribute.position",
        foreign_keys="SampleAttribute.sample_type_id",
    )
    samples = relationship("Sample", back_populates="sample_type")

    @property
    def linked_sample_attributes(self):
        return [a for a in self.sample_attributes if a.linked_sample_type_id is not None]


class SampleAttribute(Base):
    __tablename__ = "sample_attributes"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sample_type_id = Column(UUID(as_uuid=True), ForeignKey("sample_types.id"), nullable=False)
    title = Column(String, nullable=False)
    attribute_type = Column(String, nullable=False, default="String")
    unit_symbol = Column(String)
    required = Column(Boolean, default=False)
    is_title = Column(Boolean, default=False)
    position = Column(Integer, default=0)
    linked_sample_type_id = Column(UUID(as_uuid=True), ForeignKey("sample_types.id"), nullable=True)

    sample_type = relationship("SampleType", back_populates="sample_attributes", foreign_keys=[sample_type_id])


class Sample(AssetMixin, Base):
    __tablename__ = "samples"
    sample_type_id = Column(UUID(as_uuid=True), ForeignKey("sample_types.id"), nullable=False)
    data = Column(JSON, default=dict)

    sample_type = relationship("SampleType", back_populates="samples")


class Strain(AssetMixin, Base):
    __tablename__ = "strains"
    organism = Column(String)
    provider_name = Column(String)
    comment = Column(Text)


class Publication(AssetMixin, Base):
    __tablename__ = "publications"
    scalable = True
    pubmed_id = Column(Integer, index=True)
    doi = Column(String, index=True)
    abstract = Column(Text)
    journal = Column(String)
    published_date = Column(Date)
    authors = Column(JSON, default=list)


class Node(AssetMixin, Base):
    __tablename__ = "nodes"
    scalable = True
    version = Column(Integer, default=1, nullable=False)

    versions = relationship(
        "NodeVersion",
        back_populates="node",
        cascade="all, delete-orphan",
        order_by="NodeVersion.version",
    )

    @property
    def latest_version(self):
        return self.versions[-1] if self.versions else None

    def find_version(self, version: int):
        return next((v for v in self.versions if v.version == version), None)

    def state_allows_delete(self) -> bool:
        # a minted DOI pins the node
        return not any(v.doi for v in self.versions)


class NodeVersion(Base):
    __tablename__ = "node_versions"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    node_id = Column(UUID(as_uuid=True), ForeignKey("nodes.id"), nullable=False)
    version = Column(Integer, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text)
    revision_comments = Column(Text)
    doi = Column(String)
    created_at = Column(DateTime, default=_utcnow)

    node = relationship("Node", back_populates="versions")

    __table_args__ = (sa.UniqueConstraint("node_id", "version"),)


class ContentBlob(Base):
    # not cascaded from assets: kept to detect future duplicates
    __tablename__ = "content_blobs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    asset_type = Column(String, nullable=False)
    asset_id = Column(UUID(as_uuid=True), nullable=False)
    asset_version = Column(Integer, nullable=False, default=1)
    url = Column(String)
    original_filename = Column(String)
    content_type = Column(String)
    created_at = Column(DateTime, default=_utcnow)


class ActivityLog(Base):
    __tablename__ = "activity_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    action = Column(String, nullable=False)
    controller = Column(String)
    target_type = Column(String)
    target_id = Column(UUID(as_uuid=True))
    details = Column(JSON, default=dict)
    created_at = Column(DateTime, default=_utcnow)


ASSET_MODELS = {
    cls.__name__: cls
    for cls in (Investigation, Study, Assay, Sample, Strain, Publication, Node)
}
