"""Deterministic mapping from business entities to indexable text.

One formatter per entity type. The same entity always produces the same
content and metadata, so reindexing an unchanged entity is a no-op for the
store. Labels are French, the language the site teams work in.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable

from shared.models.chunk import ChunkMetadata, DocumentChunk
from shared.models.entities import (
    BusinessEntity,
    ClientChoiceEntity,
    ClientEntity,
    DocumentEntity,
    EntityType,
    ExpenseEntity,
    MachineEntity,
    MaterialEntity,
    NoteEntity,
    OrderEntity,
    ProgressStatementEntity,
    RackEntity,
    RemarkEntity,
    SiteEntity,
    SiteScoped,
    SubcontractorEntity,
    TaskEntity,
)

NOT_SPECIFIED = "Non spécifié"
NOT_SPECIFIED_F = "Non spécifiée"
NO_DESCRIPTION = "Aucune description"


@dataclass
class ChunkDraft:
    """A chunk before its content has been embedded."""

    id: str
    content: str
    metadata: ChunkMetadata

    def with_embedding(self, embedding: list[float]) -> DocumentChunk:
        return DocumentChunk(id=self.id, content=self.content, metadata=self.metadata, embedding=embedding)


@dataclass
class _Formatted:
    content: str
    entity_name: str
    status: str | None = None
    extra: dict = field(default_factory=dict)


##########################################
############### FORMATTING ###############
##########################################

def _fmt_date(value: date | datetime | None, fallback: str = NOT_SPECIFIED_F) -> str:
    if value is None:
        return fallback
    return value.strftime("%d/%m/%Y")


def _fmt_amount(value: float | None, fallback: str = NOT_SPECIFIED) -> str:
    if value is None:
        return fallback
    # 1234.5 -> "1 234,50 €"
    return f"{value:,.2f}".replace(",", " ").replace(".", ",") + " €"


def _fmt_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _or(value: str | None, fallback: str) -> str:
    return value if value else fallback


def _site_label(entity: SiteScoped) -> str:
    if entity.site_name and entity.site_id:
        return f"{entity.site_name} ({entity.site_id})"
    return entity.site_name or entity.site_id or NOT_SPECIFIED


def _named(prefix: str, entity: SiteScoped) -> str:
    return f"{prefix} - {entity.site_name}" if entity.site_name else prefix


##########################################
############### FORMATTERS ###############
##########################################

def _format_site(e: SiteEntity) -> _Formatted:
    content = "\n".join([
        f"CHANTIER: {e.name}",
        f"ID: {e.reference}",
        f"Adresse: {_or(e.address, NOT_SPECIFIED_F)}",
        f"Client: {_or(e.client_name, NOT_SPECIFIED)}",
        f"Statut: {_or(e.status, NOT_SPECIFIED)}",
        f"Date de début: {_fmt_date(e.start_date)}",
        f"Date de fin: {_fmt_date(e.end_date)}",
        f"Description: {_or(e.description, NO_DESCRIPTION)}",
        f"Budget: {_fmt_amount(e.budget)}",
    ])
    return _Formatted(content, e.name, e.status, {"reference": e.reference, "client_name": e.client_name})


def _format_client(e: ClientEntity) -> _Formatted:
    content = "\n".join([
        f"CLIENT: {e.name}",
        f"Email: {_or(e.email, NOT_SPECIFIED)}",
        f"Adresse: {_or(e.address, NOT_SPECIFIED_F)}",
        f"Téléphone: {_or(e.phone, NOT_SPECIFIED)}",
    ])
    return _Formatted(content, e.name)


def _format_order(e: OrderEntity) -> _Formatted:
    content = "\n".join([
        f"COMMANDE: {e.name}",
        f"ID: {e.reference}",
        f"Statut: {_or(e.status, NOT_SPECIFIED)}",
        f"Date: {_fmt_date(e.ordered_at)}",
        f"Montant HT: {_fmt_amount(e.amount_excl_vat)}",
        f"Montant TTC: {_fmt_amount(e.amount_incl_vat)}",
        f"Chantier: {_site_label(e)}",
        f"Client: {_or(e.client_name, NOT_SPECIFIED)}",
    ])
    return _Formatted(content, e.name, e.status, {"reference": e.reference, "amount_incl_vat": e.amount_incl_vat})


def _format_progress_statement(e: ProgressStatementEntity) -> _Formatted:
    percentage = _fmt_number(e.percentage)
    content = "\n".join([
        f"ÉTAT D'AVANCEMENT: {percentage}%",
        f"ID: {e.reference}",
        f"Date: {_fmt_date(e.statement_date)}",
        f"Description: {_or(e.description, NO_DESCRIPTION)}",
        f"Chantier: {_site_label(e)}",
        f"Client: {_or(e.client_name, NOT_SPECIFIED)}",
    ])
    return _Formatted(content, _named(f"État {percentage}%", e), extra={"percentage": e.percentage})


def _format_subcontractor(e: SubcontractorEntity) -> _Formatted:
    status = "Actif" if e.active else "Inactif"
    content = "\n".join([
        f"SOUS-TRAITANT: {e.name}",
        f"Email: {_or(e.email, NOT_SPECIFIED)}",
        f"Contact: {_or(e.contact, NOT_SPECIFIED)}",
        f"Adresse: {_or(e.address, NOT_SPECIFIED_F)}",
        f"Téléphone: {_or(e.phone, NOT_SPECIFIED)}",
        f"TVA: {_or(e.vat_number, NOT_SPECIFIED_F)}",
        f"Statut: {status}",
    ])
    return _Formatted(content, e.name, status)


def _format_document(e: DocumentEntity) -> _Formatted:
    content = "\n".join([
        f"DOCUMENT - Chantier: {_site_label(e)}",
        f"Nom: {e.name}",
        f"Type: {_or(e.kind, NOT_SPECIFIED)}",
        f"Description: {_or(e.description, NO_DESCRIPTION)}",
        f"URL: {_or(e.url, NOT_SPECIFIED_F)}",
        f"Date d'ajout: {_fmt_date(e.created_at)}",
    ])
    return _Formatted(content, _named(f"Document {e.name}", e), extra={"kind": e.kind})


def _format_note(e: NoteEntity) -> _Formatted:
    content = "\n".join([
        f"NOTE LIBRE - Chantier: {_site_label(e)}",
        f"Date: {_fmt_date(e.created_at)}",
        f"Auteur: {_or(e.author, NOT_SPECIFIED)}",
        "Contenu:",
        e.content,
    ])
    return _Formatted(content, _named("Note", e))


def _format_remark(e: RemarkEntity) -> _Formatted:
    status = "Résolue" if e.resolved else "En cours"
    content = "\n".join([
        f"REMARQUE DE RÉCEPTION - Chantier: {_site_label(e)}",
        f"Localisation: {_or(e.location, NOT_SPECIFIED_F)}",
        f"Description: {e.description}",
        f"Statut: {status}",
        f"Date: {_fmt_date(e.created_at)}",
    ])
    return _Formatted(content, _named("Remarque", e), status)


def _format_material(e: MaterialEntity) -> _Formatted:
    if e.rack_name:
        location = f"Rack: {e.rack_name} ({_or(e.rack_location, NOT_SPECIFIED_F)})"
        if e.row is not None and e.column is not None:
            location += f", Position: {e.row}-{e.column}"
    else:
        location = "Non localisé"
    status = "Disponible" if e.quantity > 0 else "Épuisé"
    content = "\n".join([
        f"MATÉRIAU: {e.name}",
        f"Description: {_or(e.description, NO_DESCRIPTION)}",
        f"Quantité en stock: {_fmt_number(e.quantity)} unité(s)",
        f"Code QR: {_or(e.qr_code, 'Non assigné')}",
        f"Localisation: {location}",
        f"Statut: {status}",
    ])
    return _Formatted(content, e.name, status, {"quantity": e.quantity, "rack_name": e.rack_name})


def _format_rack(e: RackEntity) -> _Formatted:
    content = "\n".join([
        f"RACK: {e.name}",
        f"Description: {_or(e.description, NO_DESCRIPTION)}",
        f"Localisation: {_or(e.location, NOT_SPECIFIED_F)}",
    ])
    return _Formatted(content, e.name)


def _format_machine(e: MachineEntity) -> _Formatted:
    content = "\n".join([
        f"MACHINE/ÉQUIPEMENT: {e.name}",
        f"Modèle: {_or(e.model, NOT_SPECIFIED)}",
        f"Numéro de série: {_or(e.serial_number, NOT_SPECIFIED)}",
        f"Localisation: {_or(e.location, NOT_SPECIFIED_F)}",
        f"Statut: {_or(e.status, NOT_SPECIFIED)}",
        f"Date d'achat: {_fmt_date(e.purchase_date)}",
        f"Code QR: {_or(e.qr_code, 'Non assigné')}",
        f"Commentaire: {_or(e.comment, 'Aucun commentaire')}",
    ])
    return _Formatted(content, e.name, e.status)


def _format_expense(e: ExpenseEntity) -> _Formatted:
    content = "\n".join([
        f"DÉPENSE: {e.description}",
        f"Montant: {_fmt_amount(e.amount)}",
        f"Catégorie: {_or(e.category, NOT_SPECIFIED_F)}",
        f"Date: {_fmt_date(e.expense_date)}",
        f"Chantier: {_site_label(e)}",
        f"Client: {_or(e.client_name, NOT_SPECIFIED)}",
    ])
    return _Formatted(content, e.description, extra={"amount": e.amount, "category": e.category})


def _format_task(e: TaskEntity) -> _Formatted:
    content = "\n".join([
        f"TÂCHE: {e.title}",
        f"Description: {_or(e.description, NO_DESCRIPTION)}",
        f"Statut: {_or(e.status, NOT_SPECIFIED)}",
        f"Priorité: {_or(e.priority, NOT_SPECIFIED_F)}",
        f"Début: {_fmt_date(e.start, NOT_SPECIFIED)}",
        f"Fin: {_fmt_date(e.end, NOT_SPECIFIED_F)}",
        f"Assignée à: {_or(e.assignee, 'Non assignée')}",
        f"Chantier: {_site_label(e)}",
    ])
    return _Formatted(content, e.title, e.status, {"priority": e.priority, "assignee": e.assignee})


def _format_client_choice(e: ClientChoiceEntity) -> _Formatted:
    parts = [
        f"Choix client pour {e.client_name}",
        f"Date de visite: {_fmt_date(e.visit_date)}",
        f"Statut: {_or(e.status, NOT_SPECIFIED)}",
    ]
    if e.site_name:
        parts.append(f"Chantier associé: {e.site_name}")
    if e.phone:
        parts.append(f"Téléphone: {e.phone}")
    if e.email:
        parts.append(f"Email: {e.email}")
    if e.general_notes:
        parts.append(f"Notes générales: {e.general_notes}")

    details = sorted(e.details, key=lambda d: d.number)
    if details:
        parts.append(f"\nChoix de revêtements ({len(details)} choix):")
    for d in details:
        parts.append(f"\nChoix #{d.number} - {d.kind}:")
        if d.locations:
            parts.append(f"Localisation: {', '.join(d.locations)}")
        parts.append(f"Marque: {_or(d.brand, NOT_SPECIFIED_F)}")
        if d.collection:
            parts.append(f"Collection: {d.collection}")
        parts.append(f"Modèle: {_or(d.model, NOT_SPECIFIED)}")
        if d.reference:
            parts.append(f"Référence: {d.reference}")
        if d.color:
            parts.append(f"Couleur: {d.color}")
        if d.length_cm and d.width_cm:
            parts.append(f"Format: {_fmt_number(d.length_cm)}x{_fmt_number(d.width_cm)} cm")
        if d.thickness_mm:
            parts.append(f"Épaisseur: {_fmt_number(d.thickness_mm)} mm")
        if d.finish:
            parts.append(f"Finition: {d.finish}")
        if d.estimated_area_m2:
            parts.append(f"Surface estimée: {_fmt_number(d.estimated_area_m2)} m²")
        if d.joint_color:
            parts.append(f"Joints: {d.joint_color}")
            if d.joint_width_mm:
                parts.append(f"Largeur joint: {_fmt_number(d.joint_width_mm)} mm")
            if d.joint_type:
                parts.append(f"Type de joint: {d.joint_type}")
        if d.laying_type:
            parts.append(f"Type de pose: {d.laying_type}")
        if d.laying_direction:
            parts.append(f"Sens de pose: {d.laying_direction}")
        if d.laying_notes:
            parts.append(f"Particularités de pose: {d.laying_notes}")
        if d.notes:
            parts.append(f"Notes: {d.notes}")

    extra = {"visit_date": e.visit_date.isoformat() if e.visit_date else None, "choice_count": len(details)}
    return _Formatted("\n".join(parts), e.client_name, e.status, extra)


_FORMATTERS: dict[EntityType, Callable[..., _Formatted]] = {
    EntityType.SITE: _format_site,
    EntityType.CLIENT: _format_client,
    EntityType.ORDER: _format_order,
    EntityType.PROGRESS_STATEMENT: _format_progress_statement,
    EntityType.SUBCONTRACTOR: _format_subcontractor,
    EntityType.DOCUMENT: _format_document,
    EntityType.NOTE: _format_note,
    EntityType.REMARK: _format_remark,
    EntityType.MATERIAL: _format_material,
    EntityType.RACK: _format_rack,
    EntityType.MACHINE: _format_machine,
    EntityType.EXPENSE: _format_expense,
    EntityType.TASK: _format_task,
    EntityType.CLIENT_CHOICE: _format_client_choice,
}

_missing = set(EntityType) - set(_FORMATTERS)
if _missing:
    raise RuntimeError("No chunk formatter for entity types: %s" % sorted(t.value for t in _missing))


##########################################
################ BUILDER #################
##########################################

def make_chunk_id(entity_type: EntityType, entity_id: str) -> str:
    return f"{EntityType(entity_type).value}-{entity_id}"


class ChunkBuilder:
    """Turns a validated business entity into a ChunkDraft."""

    def build(self, entity: BusinessEntity) -> ChunkDraft:
        entity_type = EntityType(entity.entity_type)
        formatted = _FORMATTERS[entity_type](entity)
        extra = {k: v for k, v in formatted.extra.items() if v is not None}
        metadata = ChunkMetadata(
            entity_type=entity_type,
            entity_id=entity.id,
            entity_name=formatted.entity_name,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            scope_id=entity.site_id if isinstance(entity, SiteScoped) else None,
            status=formatted.status,
            extra=extra,
        )
        return ChunkDraft(id=make_chunk_id(entity_type, entity.id), content=formatted.content, metadata=metadata)
