import pytest

from mapinsol.filtering import (
    FilterCriteria,
    count_unique_entities,
    criteria_from_params,
    criteria_to_params,
    filter_options,
    filter_practices,
    page_numbers,
    paginate,
)
from mapinsol.models import Practice, TaxonomyTerm

CATEGORIES = [
    TaxonomyTerm(id=10, name="Autonomía y AVD"),
    TaxonomyTerm(id=11, name="Soledad y Conectividad"),
]
TAGS = [TaxonomyTerm(id=20, name="Tecnología")]


def sample():
    return [
        Practice(
            id=1,
            title="Huertos urbanos",
            responsible_entity="Fundación Uno",
            region="Madrid",
            province="Madrid",
            municipality="Alcalá de Henares",
            start_year="2019",
            current_status="En curso",
            categories=[10],
            tags=[20],
            target_population=["personas_mayores"],
            involved_agents=["ong"],
        ),
        Practice(
            id=2,
            title="Radio para mayores",
            responsible_entity="Asociación Dos",
            region="Galicia",
            province="Lugo",
            municipality="Lugo",
            start_year="2021",
            current_status="Finalizada",
            categories=[11],
            target_population=["cuidadores"],
            is_international=True,
            country="Portugal",
        ),
        Practice(
            id=3,
            title="Acompañamiento telefónico",
            responsible_entity="Fundación Uno",
            region="Madrid",
            start_year="2021",
            current_status="En curso",
            categories=[10, 11],
            involved_agents=["voluntariado"],
        ),
    ]


def ids(practices):
    return [p.id for p in practices]


def test_empty_criteria_is_identity():
    practices = sample()
    assert FilterCriteria().is_empty
    assert filter_practices(practices, FilterCriteria()) == practices


def test_filtering_is_idempotent():
    practices = sample()
    criteria = FilterCriteria(categories=[10], statuses=["En curso"])
    once = filter_practices(practices, criteria)
    assert filter_practices(once, criteria) == once


def test_kinds_combine_with_and():
    practices = sample()
    # practice 1 matches the category but not the year; practice 2 the year but not the category
    criteria = FilterCriteria(categories=[10], years=["2021"])
    assert ids(filter_practices(practices, criteria)) == [3]


def test_values_within_a_kind_combine_with_or():
    practices = sample()
    criteria = FilterCriteria(population=["personas_mayores", "cuidadores"])
    assert ids(filter_practices(practices, criteria)) == [1, 2]
    assert ids(filter_practices(practices, FilterCriteria(regions=["Galicia", "Madrid"]))) == [1, 2, 3]


def test_search_and_locality_are_case_insensitive():
    practices = sample()
    assert ids(filter_practices(practices, FilterCriteria(search="alcalá"))) == [1]
    assert ids(filter_practices(practices, FilterCriteria(search="fundación uno"))) == [1, 3]
    assert ids(filter_practices(practices, FilterCriteria(locality="PORTUGAL"))) == [2]


def test_remaining_kinds():
    practices = sample()
    assert ids(filter_practices(practices, FilterCriteria(tags=[20]))) == [1]
    assert ids(filter_practices(practices, FilterCriteria(agents=["voluntariado"]))) == [3]
    assert ids(filter_practices(practices, FilterCriteria(international_only=True))) == [2]
    assert ids(filter_practices(practices, FilterCriteria(statuses=["Finalizada"]))) == [2]


def test_filter_options():
    options = filter_options(sample())
    assert options.years == ["2021", "2019"]
    assert options.statuses == ["En curso", "Finalizada"]
    assert options.regions == ["Galicia", "Madrid"]
    assert options.population == ["cuidadores", "personas_mayores"]
    assert options.agents == ["ong", "voluntariado"]


def test_count_unique_entities():
    assert count_unique_entities(sample()) == 2


def test_criteria_from_params_resolves_names():
    criteria = criteria_from_params(
        buscar="  radio ",
        categoria=["autonomía y vida diaria", "Soledad y Conectividad", "No existe"],
        etiqueta="tecnología",
        estado="En curso",
        internacional="true",
        categories=CATEGORIES,
        tags=TAGS,
    )
    assert criteria.search == "  radio "
    assert criteria.categories == [10, 11]
    assert criteria.tags == [20]
    assert criteria.statuses == ["En curso"]
    assert criteria.international_only is True


def test_unknown_names_impose_nothing():
    criteria = criteria_from_params(categoria="No existe", etiqueta="Tampoco", categories=CATEGORIES, tags=TAGS)
    assert criteria.is_empty


def test_criteria_to_params_only_single_values():
    criteria = FilterCriteria(
        search="radio",
        categories=[11],
        statuses=["En curso", "Finalizada"],
        years=["2021"],
        international_only=True,
    )
    assert criteria_to_params(criteria, CATEGORIES, TAGS) == {
        "categoria": "Soledad y Conectividad",
        "buscar": "radio",
        "anio": "2021",
        "internacional": "true",
    }


def test_paginate():
    practices = [Practice(id=i) for i in range(1, 26)]
    last = paginate(practices, page=3, per_page=12)
    assert ids(last.items) == [25]
    assert last.total == 25
    assert last.total_pages == 3

    clamped = paginate(practices, page=99, per_page=12)
    assert clamped.page == 3

    empty = paginate([], page=2)
    assert empty.items == []
    assert empty.page == 1
    assert empty.total_pages == 0


def test_page_numbers():
    assert page_numbers(5, 10) == [1, "...", 3, 4, 5, 6, 7, "...", 10]
    assert page_numbers(1, 3) == [1, 2, 3]
    assert page_numbers(1, 0) == []


def test_whitespace_search_is_kept_as_typed():
    criteria = criteria_from_params(buscar=" ")
    assert criteria.search == " "
    assert not criteria.is_empty
    assert ids(filter_practices(sample(), criteria)) == [1, 2, 3]


@pytest.mark.parametrize("per_page", [0, -2])
def test_paginate_rejects_non_positive_page_size(per_page):
    with pytest.raises(ValueError):
        paginate(sample(), page=1, per_page=per_page)
