"""KWPilot: Versioned Prompt Store.

Each save creates a new version and makes it the only active one for its
type. Activating an older version is how rollback works.
"""

import json
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from kwpilot.core.logging import get_logger
from kwpilot.models.prompt_models import PromptType, PromptVersion
from kwpilot.research.prompts import DEFAULT_PROMPTS

logger = get_logger("store.prompts")


def _check_type(prompt_type: str) -> str:
    try:
        return PromptType(prompt_type).value
    except ValueError:
        raise ValueError(
            f"Unknown prompt type: {prompt_type}. Expected 'seed' or 'analysis'."
        )


def prompt_to_dict(p: PromptVersion) -> dict:
    return {
        "id": p.id,
        "prompt_type": p.prompt_type,
        "version": p.version,
        "name": p.name,
        "description": p.description,
        "prompt": p.prompt,
        "variables": json.loads(p.variables_json or "[]"),
        "is_active": p.is_active,
        "created_by": p.created_by,
        "change_note": p.change_note,
        "created_at": p.created_at.isoformat() if p.created_at else None,
    }


def get_active_prompt(session: Session, prompt_type: str) -> Optional[PromptVersion]:
    prompt_type = _check_type(prompt_type)
    return session.exec(
        select(PromptVersion).where(
            PromptVersion.prompt_type == prompt_type,
            PromptVersion.is_active == True,  # noqa: E712
        )
    ).first()


def get_all_active_prompts(session: Session) -> Dict[str, Optional[PromptVersion]]:
    return {t.value: get_active_prompt(session, t.value) for t in PromptType}


def get_prompt_versions(
    session: Session, prompt_type: str, limit: int = 20
) -> List[PromptVersion]:
    """Versions of a type, newest first."""
    prompt_type = _check_type(prompt_type)
    return list(
        session.exec(
            select(PromptVersion)
            .where(PromptVersion.prompt_type == prompt_type)
            .order_by(PromptVersion.version.desc())  # type: ignore
            .limit(limit)
        ).all()
    )


def get_prompt_by_version(
    session: Session, prompt_type: str, version: int
) -> Optional[PromptVersion]:
    prompt_type = _check_type(prompt_type)
    return session.exec(
        select(PromptVersion).where(
            PromptVersion.prompt_type == prompt_type,
            PromptVersion.version == version,
        )
    ).first()


def _latest_version(session: Session, prompt_type: str) -> int:
    latest = session.exec(
        select(func.max(PromptVersion.version)).where(
            PromptVersion.prompt_type == prompt_type
        )
    ).one()
    return latest or 0


def _deactivate_all(session: Session, prompt_type: str) -> None:
    active = session.exec(
        select(PromptVersion).where(
            PromptVersion.prompt_type == prompt_type,
            PromptVersion.is_active == True,  # noqa: E712
        )
    ).all()
    for p in active:
        p.is_active = False
        session.add(p)


def save_prompt(
    session: Session,
    prompt_type: str,
    prompt: str,
    name: str = "",
    description: str = "",
    variables: Optional[List[str]] = None,
    created_by: str = "user",
    change_note: str = "",
) -> PromptVersion:
    """Insert a new active version (max + 1) and deactivate the rest."""
    prompt_type = _check_type(prompt_type)
    if not prompt.strip():
        raise ValueError("Prompt text cannot be empty")

    version = _latest_version(session, prompt_type) + 1
    _deactivate_all(session, prompt_type)

    row = PromptVersion(
        prompt_type=prompt_type,
        version=version,
        name=name,
        description=description,
        prompt=prompt,
        variables_json=json.dumps(variables or []),
        is_active=True,
        created_by=created_by,
        change_note=change_note,
    )
    session.add(row)
    session.commit()
    session.refresh(row)
    logger.info(f"💾 Saved {prompt_type} prompt v{version} (by {created_by})")
    return row


def activate_version(session: Session, prompt_type: str, version: int) -> PromptVersion:
    """Make an existing version the active one (rollback)."""
    prompt_type = _check_type(prompt_type)
    target = get_prompt_by_version(session, prompt_type, version)
    if not target:
        raise LookupError(f"Version {version} not found for type {prompt_type}")

    _deactivate_all(session, prompt_type)
    target.is_active = True
    session.add(target)
    session.commit()
    session.refresh(target)
    logger.info(f"⏪ Activated {prompt_type} prompt v{version}")
    return target


def delete_version(session: Session, prompt_type: str, version: int) -> None:
    prompt_type = _check_type(prompt_type)
    target = get_prompt_by_version(session, prompt_type, version)
    if not target:
        raise LookupError(f"Version {version} not found for type {prompt_type}")
    if target.is_active:
        raise ValueError("Cannot delete the active version. Activate another version first.")
    session.delete(target)
    session.commit()
    logger.info(f"🗑️ Deleted {prompt_type} prompt v{version}")


def get_prompt_stats(session: Session) -> Dict[str, dict]:
    stats = {}
    for t in PromptType:
        versions = get_prompt_versions(session, t.value, limit=1000)
        active = next((p for p in versions if p.is_active), None)
        stats[t.value] = {
            "total_versions": len(versions),
            "active_version": active.version if active else None,
            "last_updated": versions[0].created_at.isoformat() if versions else None,
        }
    return stats


def seed_default_prompts(session: Session) -> List[str]:
    """Install version 1 of each default prompt for types with no versions yet."""
    seeded = []
    for t in PromptType:
        if _latest_version(session, t.value) > 0:
            continue
        default = DEFAULT_PROMPTS[t.value]
        save_prompt(
            session,
            t.value,
            default["prompt"],
            name=default["name"],
            description=default["description"],
            variables=default["variables"],
            created_by="system",
            change_note="Initial default prompt",
        )
        seeded.append(t.value)
    if seeded:
        logger.info(f"🌱 Seeded default prompts: {', '.join(seeded)}")
    return seeded


def resolve_prompt(session: Session, prompt_type: str) -> PromptVersion:
    """Active prompt for a type, seeding the defaults on first use."""
    active = get_active_prompt(session, prompt_type)
    if active is None:
        seed_default_prompts(session)
        active = get_active_prompt(session, prompt_type)
    if active is None:
        raise LookupError(f"No active {prompt_type} prompt")
    return active
