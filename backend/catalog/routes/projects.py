from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session
from uuid import UUID

from ..database import get_db
from ..models import (
    AssetProject,
    GroupMembership,
    Institution,
    Programme,
    Project,
    User,
    WorkGroup,
)
from ..schemas import (
    MembershipCreate,
    MembershipOut,
    MembershipUpdate,
    ProjectCreate,
    ProjectUpdate,
    ProjectOut,
    UserOut,
)
from ..auth import get_current_user, get_optional_user
from .. import audit, search

router = APIRouter(prefix="/api/projects", tags=["projects"])
memberships_router = APIRouter(prefix="/api/memberships", tags=["projects"])


def _membership_out(membership: GroupMembership) -> MembershipOut:
    return MembershipOut(
        id=membership.id,
        user_id=membership.user_id,
        project_id=membership.work_group.project_id,
        institution_id=membership.work_group.institution_id,
        time_left_at=membership.time_left_at,
        has_left=membership.has_left,
    )


def _ensure_project_admin(project: Project, user: User):
    if user.is_admin:
        return
    if project.programme and project.programme.can_manage(user):
        return
    if project.created_by == user.id:
        return
    raise HTTPException(status_code=403, detail="Not authorized")


def _work_group(db: Session, project: Project, institution_id: UUID) -> WorkGroup:
    institution = db.get(Institution, institution_id)
    if not institution:
        raise HTTPException(status_code=422, detail="A workgroup is required")
    wg = db.query(WorkGroup).filter_by(project_id=project.id, institution_id=institution.id).first()
    if not wg:
        wg = WorkGroup(project=project, institution=institution)
        db.add(wg)
        db.flush()
    return wg


@router.post("", response_model=ProjectOut)
def create_project(
    project: ProjectCreate,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    if db.query(Project).filter_by(title=project.title).first():
        raise HTTPException(status_code=422, detail="Title has already been taken")
    if project.programme_id:
        programme = db.get(Programme, project.programme_id)
        if not programme:
            raise HTTPException(status_code=422, detail="Unknown programme")
        if not programme.can_manage(user):
            raise HTTPException(status_code=403, detail="Not authorized")
    data = project.model_dump(exclude={"institution_id"})
    db_proj = Project(**data, created_by=user.id)
    db.add(db_proj)
    db.flush()
    if project.institution_id:
        wg = _work_group(db, db_proj, project.institution_id)
        db.add(GroupMembership(user=user, work_group=wg))
    db.commit()
    db.refresh(db_proj)
    audit.log_action(db, user.id, "create", "projects", "Project", db_proj.id)
    search.index_record(db_proj)
    return db_proj


@router.get("", response_model=list[ProjectOut])
def list_projects(db: Session = Depends(get_db), user=Depends(get_optional_user)):
    return db.query(Project).order_by(Project.title).all()


@router.get("/{project_id}", response_model=ProjectOut)
def get_project(project_id: UUID, db: Session = Depends(get_db), user=Depends(get_optional_user)):
    proj = db.get(Project, project_id)
    if not proj:
        raise HTTPException(status_code=404)
    return proj


@router.put("/{project_id}", response_model=ProjectOut)
def update_project(
    project_id: UUID,
    project: ProjectUpdate,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    proj = db.get(Project, project_id)
    if not proj:
        raise HTTPException(status_code=404)
    _ensure_project_admin(proj, user)
    for k, v in project.model_dump(exclude_unset=True).items():
        setattr(proj, k, v)
    db.commit()
    db.refresh(proj)
    search.index_record(proj)
    return proj


@router.delete("/{project_id}", status_code=204)
def delete_project(project_id: UUID, db: Session = Depends(get_db), user=Depends(get_current_user)):
    proj = db.get(Project, project_id)
    if not proj:
        raise HTTPException(status_code=404)
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Not authorized")
    if proj.people:
        raise HTTPException(status_code=422, detail="Project still has members")
    db.query(AssetProject).filter_by(project_id=proj.id).delete()
    db.delete(proj)
    db.commit()
    search.remove_record(proj)
    return Response(status_code=204)


@router.get("/{project_id}/people", response_model=list[UserOut])
def project_people(project_id: UUID, db: Session = Depends(get_db), user=Depends(get_optional_user)):
    proj = db.get(Project, project_id)
    if not proj:
        raise HTTPException(status_code=404)
    return proj.people


@router.get("/{project_id}/memberships", response_model=list[MembershipOut])
def list_memberships(project_id: UUID, db: Session = Depends(get_db), user=Depends(get_current_user)):
    proj = db.get(Project, project_id)
    if not proj:
        raise HTTPException(status_code=404)
    return [_membership_out(m) for wg in proj.work_groups for m in wg.memberships]


@router.post("/{project_id}/memberships", response_model=MembershipOut)
def add_membership(
    project_id: UUID,
    data: MembershipCreate,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    proj = db.get(Project, project_id)
    if not proj:
        raise HTTPException(status_code=404)
    _ensure_project_admin(proj, user)
    member = db.get(User, data.user_id)
    if not member:
        raise HTTPException(status_code=404, detail="User not found")
    wg = _work_group(db, proj, data.institution_id)
    existing = db.query(GroupMembership).filter_by(user_id=member.id, work_group_id=wg.id).first()
    if existing:
        if not existing.has_left:
            raise HTTPException(status_code=400, detail="User already member")
        existing.has_left = False
        membership = existing
    else:
        membership = GroupMembership(user=member, work_group=wg)
        db.add(membership)
    db.commit()
    db.refresh(membership)
    audit.log_action(db, user.id, "add_member", "projects", "Project", proj.id, {"user_id": str(member.id)})
    return _membership_out(membership)


@memberships_router.patch("/{membership_id}", response_model=MembershipOut)
def update_membership(
    membership_id: UUID,
    data: MembershipUpdate,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    membership = db.get(GroupMembership, membership_id)
    if not membership:
        raise HTTPException(status_code=404)
    _ensure_project_admin(membership.work_group.project, user)
    membership.has_left = data.has_left
    db.commit()
    db.refresh(membership)
    return _membership_out(membership)


@memberships_router.delete("/{membership_id}", status_code=204)
def delete_membership(membership_id: UUID, db: Session = Depends(get_db), user=Depends(get_current_user)):
    membership = db.get(GroupMembership, membership_id)
    if not membership:
        raise HTTPException(status_code=404)
    _ensure_project_admin(membership.work_group.project, user)
    db.delete(membership)
    db.commit()
    return Response(status_code=204)
