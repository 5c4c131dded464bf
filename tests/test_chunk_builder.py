import pytest
from pydantic import TypeAdapter, ValidationError

from services.rag_indexing.ChunkBuilder import ChunkBuilder, _FORMATTERS, make_chunk_id
from shared.models.entities import BusinessEntity, EntityType

adapter = TypeAdapter(BusinessEntity)


def entity(entity_type: EntityType, **fields):
    return adapter.validate_python({"entity_type": entity_type.value, **fields})


@pytest.fixture
def builder() -> ChunkBuilder:
    return ChunkBuilder()


def test_every_entity_type_has_a_formatter():
    assert set(_FORMATTERS) == set(EntityType)


def test_site_chunk(builder):
    site = entity(
        EntityType.SITE,
        id=12,
        reference="CH-012",
        name="Lantin",
        address="Rue Haute 5, 4450 Juprelle",
        status="En cours",
        start_date="2024-03-04",
        budget=125000.5,
        updated_at="2024-05-01T10:00:00Z",
    )

    draft = builder.build(site)

    assert draft.id == "site-12"
    assert draft.metadata.entity_type == EntityType.SITE
    assert draft.metadata.entity_id == "12"
    assert draft.metadata.entity_name == "Lantin"
    assert draft.metadata.scope_id is None
    assert draft.metadata.status == "En cours"
    assert draft.content.splitlines()[0] == "CHANTIER: Lantin"
    assert "Date de début: 04/03/2024" in draft.content
    assert "Date de fin: Non spécifiée" in draft.content
    assert "Budget: 125 000,50 €" in draft.content


def test_same_entity_gives_same_chunk(builder):
    raw = {"id": "7", "reference": "C-7", "name": "Béton", "amount_excl_vat": 100, "amount_incl_vat": 121, "site_id": 3}

    first = builder.build(entity(EntityType.ORDER, **raw))
    second = builder.build(entity(EntityType.ORDER, **raw))

    assert first == second
    assert first.metadata.scope_id == "3"
    assert "Montant TTC: 121,00 €" in first.content


def test_site_scoped_entities_name_their_site(builder):
    note = builder.build(entity(EntityType.NOTE, id="n1", content="Livraison reportée", site_id="3", site_name="Namur", author="Marc"))

    assert note.metadata.entity_name == "Note - Namur"
    assert note.content.startswith("NOTE LIBRE - Chantier: Namur (3)")
    assert note.content.endswith("Livraison reportée")


def test_material_location_and_stock_status(builder):
    stocked = builder.build(entity(EntityType.MATERIAL, id=1, name="Ciment", quantity=12, rack_name="R1", rack_location="Hangar", row=2, column=3))
    empty = builder.build(entity(EntityType.MATERIAL, id=2, name="Colle", quantity=0))

    assert "Localisation: Rack: R1 (Hangar), Position: 2-3" in stocked.content
    assert "Quantité en stock: 12 unité(s)" in stocked.content
    assert stocked.metadata.status == "Disponible"
    assert "Localisation: Non localisé" in empty.content
    assert empty.metadata.status == "Épuisé"


def test_client_choice_lists_details_in_order(builder):
    choice = builder.build(entity(
        EntityType.CLIENT_CHOICE,
        id="cc1",
        client_name="Dupont",
        visit_date="2024-02-10",
        status="Validé",
        details=[
            {"number": 2, "kind": "Faïence", "brand": "Marazzi", "model": "Blanco"},
            {"number": 1, "kind": "Carrelage", "locations": ["Cuisine", "Salon"], "brand": "Mirage",
             "model": "Stone", "length_cm": 60, "width_cm": 60, "joint_color": "Gris", "joint_width_mm": 3},
        ],
    ))

    content = choice.content
    assert choice.id == "client-choice-cc1"
    assert content.startswith("Choix client pour Dupont\nDate de visite: 10/02/2024")
    assert "Choix de revêtements (2 choix):" in content
    assert content.index("Choix #1 - Carrelage") < content.index("Choix #2 - Faïence")
    assert "Localisation: Cuisine, Salon" in content
    assert "Format: 60x60 cm" in content
    assert "Largeur joint: 3 mm" in content
    assert choice.metadata.extra == {"visit_date": "2024-02-10", "choice_count": 2}


def test_invalid_records_are_rejected():
    with pytest.raises(ValidationError):
        entity(EntityType.SITE, id=1, name="Sans référence")
    with pytest.raises(ValidationError):
        entity(EntityType.CLIENT, id="  ", name="Vide")


@pytest.mark.parametrize("bad_id", [1.5, True])
def test_non_integral_ids_are_rejected(bad_id):
    with pytest.raises(ValidationError):
        entity(EntityType.RACK, id=bad_id, name="R1")


def test_integral_float_id_matches_the_int_id(builder):
    from_float = builder.build(entity(EntityType.RACK, id=3.0, name="R1"))
    from_int = builder.build(entity(EntityType.RACK, id=3, name="R1"))

    assert from_float.id == from_int.id == "rack-3"
    assert from_float.metadata.entity_id == "3"


def test_chunk_id_format():
    assert make_chunk_id(EntityType.PROGRESS_STATEMENT, "9") == "progress-statement-9"
