"""
Reference data — departments, bidding modalities (with their step
templates) and resource sources.

Reads are open to any authenticated user; writes are admin only.
``seed_reference_data`` loads the default catalogue and is idempotent.
"""

from __future__ import annotations

import logging

from licitaflow.core.exceptions import ConflictError, ValidationError
from licitaflow.models import db
from licitaflow.models.auth import User
from licitaflow.models.reference import (
    BiddingModality,
    Department,
    ModalityStepTemplate,
    ResourceSource,
)
from licitaflow.services.helpers.lookups import commit_and_dispatch, get_or_raise, require_reference
from licitaflow.services.participation_service import require_admin
from licitaflow.utils.crypto import hash_password

logger = logging.getLogger(__name__)


# ── Default catalogue ────────────────────────────────────────────────────────

DEFAULT_DEPARTMENTS = [
    ("Licitação", "Departamento responsável pelas licitações"),
    ("Contratos", "Departamento responsável pelos contratos"),
    ("Engenharia", "Departamento responsável pelos projetos de engenharia"),
    ("Planejamento", "Departamento responsável pelo planejamento"),
    ("Gabinete do Secretário", "Autorizações e assinaturas do Secretário"),
]

DEFAULT_MODALITIES = [
    ("Pregão Eletrônico", "Modalidade de licitação para aquisição de bens e serviços comuns", 3),
    ("Concorrência", "Modalidade de licitação entre quaisquer interessados que comprovem "
                     "possuir os requisitos mínimos", 5),
    ("Dispensa", "Contratação direta sem licitação", 7),
    ("Inexigibilidade", "Contratação direta quando há inviabilidade de competição", 7),
]

DEFAULT_SOURCES = [
    ("500", "Recursos do Tesouro Estadual"),
    ("700", "Recursos do FUNPEN"),
    ("760", "Recursos de Convênios"),
]

# (step name, department index into DEFAULT_DEPARTMENTS, phase, business days)
PREGAO_STEPS = [
    ("Documento de Formalização da Demanda - DFD", 0, "Iniciação", None),
    ("Estudo Técnico Preliminar - ETP", 0, "Iniciação", None),
    ("Mapa de Risco - MR", 0, "Iniciação", None),
    ("Termo de Referência - TR", 0, "Iniciação", None),
    ("Autorização pelo Ordenador de Despesa", 3, "Iniciação", 10),
    ("Criar Processo no Órgão", 1, "Preparação", 2),
    ("Fazer Pesquisa de Preços", 1, "Preparação", 2),
    ("Elaborar Mapa Comparativo de Preços", 1, "Preparação", 10),
    ("Metodologia da Pesquisa de Preços", 1, "Preparação", 10),
    ("Consultar Disponibilidade Orçamentária", 3, "Preparação", 1),
    ("Emitir Reserva Orçamentária - R.O.", 3, "Preparação", 1),
    ("Autorização Final pelo Secretário", 4, "Execução", None),
    ("Elaborar Edital e seus Anexos", 1, "Execução", 10),
    ("Consultar Comitê Gestor de Gasto Público", 1, "Execução", 2),
    ("Solicitar Elaboração de Nota Técnica", 2, "Execução", 1),
    ("Publicar Edital", 1, "Execução", None),
    ("Realizar Sessão Pública de Lances", 1, "Execução", None),
    ("Análise de Documentação dos Licitantes", 1, "Execução", None),
    ("Adjudicação e Homologação", 1, "Finalização", None),
    ("Elaboração do Contrato", 2, "Finalização", None),
    ("Assinatura do Contrato", 4, "Finalização", None),
]

BASIC_STEPS = [
    ("Elaboração do Termo de Referência", 0, "Iniciação", None),
    ("Pesquisa de Preço", 0, "Preparação", None),
    ("Aprovação do Ordenador de Despesa", 3, "Execução", None),
]


def _required_text(data, field, max_len):
    value = (data.get(field) or "").strip()
    if not value:
        raise ValidationError(f"{field} is required", details={field: "required"})
    if len(value) > max_len:
        raise ValidationError(f"{field} must be ≤ {max_len} characters", details={field: "too long"})
    return value


def _non_negative_int(value, field, default=None):
    if value in (None, ""):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: "invalid"})
    if number < 0:
        raise ValidationError(f"{field} must be >= 0", details={field: "negative"})
    return number


# ═════════════════════════════════════════════════════════════════════════════
# Departments
# ═════════════════════════════════════════════════════════════════════════════


def list_departments() -> list[Department]:
    return Department.query.order_by(Department.name).all()


def create_department(data: dict, acting_user) -> Department:
    require_admin(acting_user, "create departments")
    name = _required_text(data, "name", 150)
    if Department.query.filter_by(name=name).first():
        raise ConflictError("Department", "name", name)
    dept = Department(name=name, description=(data.get("description") or "").strip())
    db.session.add(dept)
    commit_and_dispatch()
    logger.info("Department created department_id=%s name=%s", dept.id, name)
    return dept


# ═════════════════════════════════════════════════════════════════════════════
# Modalities & step templates
# ═════════════════════════════════════════════════════════════════════════════


def list_modalities() -> list[BiddingModality]:
    return BiddingModality.query.order_by(BiddingModality.name).all()


def create_modality(data: dict, acting_user) -> BiddingModality:
    require_admin(acting_user, "create modalities")
    name = _required_text(data, "name", 150)
    if BiddingModality.query.filter_by(name=name).first():
        raise ConflictError("BiddingModality", "name", name)
    modality = BiddingModality(
        name=name,
        description=(data.get("description") or "").strip(),
        deadline_days=_non_negative_int(data.get("deadline_days"), "deadline_days", 0),
    )
    db.session.add(modality)
    commit_and_dispatch()
    logger.info(
        "Modality created modality_id=%s name=%s deadline_days=%s",
        modality.id, name, modality.deadline_days,
    )
    return modality


def get_step_templates(modality_id: int) -> list[ModalityStepTemplate]:
    modality = get_or_raise(BiddingModality, modality_id, "BiddingModality")
    return modality.step_templates.all()


def replace_step_templates(modality_id: int, steps: list, acting_user) -> list[ModalityStepTemplate]:
    """
    Replace a modality's template with ``steps`` (ordered list of dicts:
    step_name, department_id, phase?, time_limit_days?). Existing
    processes keep the steps they were created with.
    """
    require_admin(acting_user, "edit step templates")
    modality = get_or_raise(BiddingModality, modality_id, "BiddingModality")
    if not isinstance(steps, list):
        raise ValidationError("steps must be a list", details={"steps": "invalid"})

    rows = []
    for index, item in enumerate(steps, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f"steps[{index}] must be an object", details={"steps": "invalid"})
        rows.append(ModalityStepTemplate(
            sequence=index,
            step_name=_required_text(item, "step_name", 300),
            phase=(item.get("phase") or "").strip(),
            department_id=require_reference(Department, item.get("department_id"), "department_id").id,
            time_limit_days=_non_negative_int(item.get("time_limit_days"), "time_limit_days"),
        ))

    modality.step_templates.delete()
    db.session.flush()
    for row in rows:
        row.modality_id = modality.id
        db.session.add(row)
    commit_and_dispatch()
    logger.info("Step template replaced modality_id=%s steps=%d", modality.id, len(rows))
    return modality.step_templates.all()


# ═════════════════════════════════════════════════════════════════════════════
# Resource sources
# ═════════════════════════════════════════════════════════════════════════════


def list_sources() -> list[ResourceSource]:
    return ResourceSource.query.order_by(ResourceSource.code).all()


def create_source(data: dict, acting_user) -> ResourceSource:
    require_admin(acting_user, "create resource sources")
    code = _required_text(data, "code", 50)
    if ResourceSource.query.filter_by(code=code).first():
        raise ConflictError("ResourceSource", "code", code)
    source = ResourceSource(code=code, description=(data.get("description") or "").strip())
    db.session.add(source)
    commit_and_dispatch()
    logger.info("Resource source created source_id=%s code=%s", source.id, code)
    return source


# ═════════════════════════════════════════════════════════════════════════════
# Seed
# ═════════════════════════════════════════════════════════════════════════════


def seed_reference_data(admin_password: str | None = None) -> dict:
    """
    Insert the default catalogue where missing. With ``admin_password``
    an ``admin`` account is created too (if absent).

    Returns counts of rows created per table.
    """
    created = {"departments": 0, "modalities": 0, "step_templates": 0, "sources": 0, "users": 0}

    departments = []
    for name, description in DEFAULT_DEPARTMENTS:
        dept = Department.query.filter_by(name=name).first()
        if dept is None:
            dept = Department(name=name, description=description)
            db.session.add(dept)
            created["departments"] += 1
        departments.append(dept)
    db.session.flush()

    for name, description, deadline_days in DEFAULT_MODALITIES:
        modality = BiddingModality.query.filter_by(name=name).first()
        if modality is not None:
            continue
        modality = BiddingModality(name=name, description=description, deadline_days=deadline_days)
        db.session.add(modality)
        db.session.flush()
        template = PREGAO_STEPS if name == "Pregão Eletrônico" else BASIC_STEPS
        for sequence, (step_name, dept_index, phase, days) in enumerate(template, start=1):
            db.session.add(ModalityStepTemplate(
                modality_id=modality.id,
                sequence=sequence,
                step_name=f"{sequence}. {step_name}",
                phase=phase,
                department_id=departments[dept_index].id,
                time_limit_days=days,
            ))
            created["step_templates"] += 1
        created["modalities"] += 1

    for code, description in DEFAULT_SOURCES:
        if ResourceSource.query.filter_by(code=code).first() is None:
            db.session.add(ResourceSource(code=code, description=description))
            created["sources"] += 1

    if admin_password and User.query.filter_by(username="admin").first() is None:
        db.session.add(User(
            username="admin",
            full_name="Administrador Sistema",
            password_hash=hash_password(admin_password),
            department_id=departments[3].id,
            role="admin",
            is_active=True,
        ))
        created["users"] += 1

    commit_and_dispatch()
    logger.info("Reference data seeded %s", created)
    return created
