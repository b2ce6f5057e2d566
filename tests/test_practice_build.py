from conftest import make_raw, make_term

from mapinsol.practice_build import (
    META_TEXT_FIELDS,
    encode_practice_meta,
    normalise_practice,
    normalise_practices,
)


def test_missing_meta_defaults():
    p = normalise_practice({"id": 5})
    for field in META_TEXT_FIELDS:
        assert getattr(p, field) == ""
    assert p.id == 5
    assert p.title == ""
    assert p.slug == ""
    assert p.pdf_id == 0
    assert p.featured_media_id == 0
    assert p.gallery_ids == []
    assert p.target_population == []
    assert p.involved_agents == []
    assert p.contacts == []
    assert p.external_links == []
    assert p.featured is False
    assert p.is_international is False
    assert p.show_contact is False
    assert p.categories == []
    assert p.date_published is None
    # enrichment overlays stay unset
    assert p.gallery_details is None
    assert p.pdf_url is None
    assert p.categories_details is None


def test_non_mapping_meta_is_treated_as_empty():
    p = normalise_practice({"id": 1, "meta": ["unexpected"]})
    assert p.responsible_entity == ""
    assert p.featured is False


def test_title_entities_and_basic_fields():
    p = normalise_practice(make_raw(1, title="Cuidar &amp; Acompa&ntilde;ar", categories=[10, "11"], tags=[20]))
    assert p.title == "Cuidar & Acompañar"
    assert p.slug == "practica-1"
    assert p.responsible_entity == "Entidad 1"
    assert p.start_year == "2020"
    assert p.categories == [10, 11]
    assert p.tags == [20]
    assert p.date_published.year == 2024


def test_flags_sets_and_ids():
    raw = make_raw(
        2,
        featured=True,
        internacional_boolean="1",
        mostrar_contacto="false",
        poblacion_destinataria={"personas_mayores": "true", "cuidadores": "false"},
        agentes_implicados=["ong"],
        anexos=["3", "4"],
        pdf_buena_practica="15",
    )
    p = normalise_practice(raw)
    assert p.featured is True
    assert p.is_international is True
    assert p.show_contact is False
    assert p.target_population == ["personas_mayores"]
    assert p.involved_agents == []
    assert p.gallery_ids == [3, 4]
    assert p.pdf_id == 15


def test_contacts_from_array_and_map_agree():
    row = {"nombre_contacto": "Ana", "cargo": "Directora", "mail_contacto": "ana@example.org"}
    a = normalise_practice(make_raw(3, personas_de_contacto=[row]))
    b = normalise_practice(make_raw(3, personas_de_contacto={"item-0": row}))
    assert a.contacts == b.contacts
    assert a.contacts[0].name == "Ana"
    assert a.contacts[0].role == "Directora"
    assert a.contacts[0].phone == ""


def test_links_repeater():
    p = normalise_practice(
        make_raw(4, enlaces_anexos={"item-0": {"texto_enlace": "Web", "url_enlace": "https://example.org"}})
    )
    assert [(link.label, link.url) for link in p.external_links] == [("Web", "https://example.org")]


def test_embedded_cover_and_terms():
    embedded = {
        "wp:featuredmedia": [
            {
                "source_url": "https://cms.test/full.jpg",
                "media_details": {
                    "sizes": {
                        "thumbnail": {"source_url": "https://cms.test/thumb.jpg"},
                        "medium": {"source_url": "https://cms.test/medium.jpg"},
                    }
                },
            }
        ],
        "wp:term": [
            [make_term(10, "Autonomía y AVD")],
            [make_term(20, "Tecnología", "tags-practices")],
        ],
    }
    p = normalise_practice(make_raw(5, embedded=embedded))
    assert p.featured_media_url == "https://cms.test/medium.jpg"
    assert [c.name for c in p.categories_details] == ["Autonomía y AVD"]
    assert [t.id for t in p.tags_details] == [20]


def test_embedded_cover_falls_back_to_full_size():
    embedded = {"wp:featuredmedia": [{"source_url": "https://cms.test/full.jpg"}]}
    p = normalise_practice(make_raw(6, embedded=embedded))
    assert p.featured_media_url == "https://cms.test/full.jpg"
    assert p.categories_details is None


def test_normalise_practices_skips_junk():
    out = normalise_practices([make_raw(1), "x", None, make_raw(2)])
    assert [p.id for p in out] == [1, 2]
    assert normalise_practices({"not": "a list"}) == []


def test_meta_round_trip_keeps_selected_sets():
    raw = make_raw(
        7,
        featured=True,
        internacional_boolean="true",
        poblacion_destinataria={"cuidadores": "true", "familiares": "true", "voluntarios": "false"},
        agentes_implicados={"ong": "false", "fundaciones": "true"},
    )
    first = normalise_practice(raw)

    rebuilt = dict(raw)
    rebuilt["meta"] = {**raw["meta"], **encode_practice_meta(first)}
    second = normalise_practice(rebuilt)

    assert set(second.target_population) == {"cuidadores", "familiares"}
    assert set(second.involved_agents) == {"fundaciones"}
    assert second.featured is True
    assert second.is_international is True
    assert second.show_contact is False
