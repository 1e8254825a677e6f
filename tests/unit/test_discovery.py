"""Tests for local card discovery."""

from pathlib import Path

import pytest

from cardsync.core.models import CardKind
from cardsync.discovery import discover_card_paths, iter_cards, read_card


@pytest.mark.core
@pytest.mark.tra("Domain.Discovery")
@pytest.mark.tier(1)
class TestDiscoverCardPaths:
    """Tests for discover_card_paths function."""

    def test_finds_png_and_json_sorted(self, tmp_path: Path) -> None:
        """Only .png and .json files are returned, sorted by name."""
        for name in ("b.json", "a.png", "c.txt", "d.PNG"):
            (tmp_path / name).write_bytes(b"x")

        paths = discover_card_paths(tmp_path)

        assert [p.name for p in paths] == ["a.png", "b.json"]

    def test_ignores_subdirectories(self, tmp_path: Path) -> None:
        (tmp_path / "nested.png").mkdir()
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "deep.png").write_bytes(b"x")

        assert discover_card_paths(tmp_path) == []

    def test_missing_directory_is_empty(self, tmp_path: Path) -> None:
        assert discover_card_paths(tmp_path / "missing") == []


@pytest.mark.core
@pytest.mark.tra("Domain.Discovery")
@pytest.mark.tier(1)
class TestReadCard:
    """Tests for read_card and iter_cards."""

    def test_read_card(self, tmp_path: Path) -> None:
        path = tmp_path / "Alice.json"
        path.write_bytes(b'{"name": "Alice"}')

        card = read_card(path)

        assert card.filename == "Alice.json"
        assert card.kind is CardKind.JSON
        assert card.content == b'{"name": "Alice"}'
        assert card.path == path.resolve()

    def test_read_card_rejects_other_files(self, tmp_path: Path) -> None:
        path = tmp_path / "notes.txt"
        path.write_text("hi")

        with pytest.raises(ValueError, match="Not a character card"):
            read_card(path)

    def test_iter_cards_yields_all(self, tmp_path: Path, cards) -> None:
        (tmp_path / "A.png").write_bytes(cards.card("A"))
        (tmp_path / "B.json").write_bytes(cards.card_json({"name": "B"}))

        assert [c.filename for c in iter_cards(tmp_path)] == ["A.png", "B.json"]
