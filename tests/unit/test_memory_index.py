import pytest

from study_tutor.errors import CollectionNotFoundError
from study_tutor.retrieval.index import page_to_passage, snippet_to_passage
from study_tutor.retrieval.memory_index import InMemorySemanticIndex, hashed_vector


def _index() -> InMemorySemanticIndex:
    index = InMemorySemanticIndex()
    index.add_document(
        "student-1",
        "bio-101",
        "cell_transport.pdf",
        [
            "Cells exchange material with their surroundings. Membranes control this exchange.",
            "Osmosis is the diffusion of water across a semipermeable membrane. "
            "Water moves toward the higher solute concentration.",
        ],
    )
    index.add_document(
        "student-1",
        "hist-200",
        "renaissance.pdf",
        ["The Renaissance began in Florence in the fourteenth century."],
    )
    return index


@pytest.mark.asyncio
async def test_snippets_rank_relevant_text_first() -> None:
    hits = await _index().top_snippets("student-1", "osmosis diffusion of water", 3)

    assert hits
    assert hits[0].path == "bio-101/cell_transport.pdf"
    assert "Osmosis" in hits[0].content
    assert hits[0].page_span == [1, 1]
    assert all(a.score >= b.score for a, b in zip(hits, hits[1:]))

    passage = snippet_to_passage(hits[0])
    assert passage.document_title == "cell_transport.pdf"
    assert passage.document_id == "bio-101"
    assert passage.page_number == 2


@pytest.mark.asyncio
async def test_pages_carry_zero_based_page_index() -> None:
    hits = await _index().top_pages("student-1", "Renaissance Florence", 1)

    (hit,) = hits
    assert hit.page_index == 0
    assert page_to_passage(hit).page_number == 1


@pytest.mark.asyncio
async def test_unknown_collection_is_reported() -> None:
    with pytest.raises(CollectionNotFoundError) as excinfo:
        await _index().top_snippets("student-2", "osmosis", 3)

    assert excinfo.value.collection_id == "student-2"


def test_hashed_vectors_are_unit_length() -> None:
    vector = hashed_vector("Osmosis, osmosis and diffusion!", dimension=64)

    assert len(vector) == 64
    assert sum(value * value for value in vector) == pytest.approx(1.0)
    assert hashed_vector("...", dimension=8) == [0.0] * 8
