"""Content loader tests."""

import json
from pathlib import Path

import pytest

from modulegate.classroom import ContentLoader


PROJECT_CONTENT = Path(__file__).parent.parent / "content"

MODULE_YAML = """
id: intro
title: Intro
pages:
  - id: second
    title: Second
    position: 1
    has_quiz: true
    quiz_questions:
      - question: Ready?
        options: ["yes", "no"]
        correct: 0
  - id: first
    title: First
    position: 0
"""


def _write(path: Path, text: str):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


class TestContentLoader:

    def test_loads_yaml_and_json(self, tmp_path):
        _write(tmp_path / "modules" / "intro.yaml", MODULE_YAML)
        _write(tmp_path / "modules" / "extra.json", json.dumps({
            "id": "extra",
            "title": "Extra",
            "pages": [{"id": "only", "title": "Only", "position": 0}],
        }))
        loader = ContentLoader(tmp_path)
        assert [m.id for m in loader.get_modules()] == ["extra", "intro"]
        intro = loader.get_module("intro")
        assert [p.id for p in intro.pages] == ["first", "second"]
        assert intro.quiz_page_indices == [1]
        assert loader.get_paths() == []

    def test_loads_paths(self, tmp_path):
        _write(tmp_path / "modules" / "intro.yaml", MODULE_YAML)
        _write(tmp_path / "paths" / "p.yaml", "id: p\nname: Path\nmodule_ids: [intro]\n")
        loader = ContentLoader(tmp_path)
        assert loader.get_path("p").module_ids == ["intro"]
        assert [m.id for m in loader.get_path_modules("p")] == ["intro"]
        assert loader.get_path_modules("missing") == []

    def test_missing_modules_dir(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ContentLoader(tmp_path)

    def test_duplicate_module_id(self, tmp_path):
        _write(tmp_path / "modules" / "a.yaml", MODULE_YAML)
        _write(tmp_path / "modules" / "b.yaml", MODULE_YAML)
        with pytest.raises(ValueError, match="Duplicate module id"):
            ContentLoader(tmp_path)

    def test_path_with_unknown_module(self, tmp_path):
        _write(tmp_path / "modules" / "intro.yaml", MODULE_YAML)
        _write(tmp_path / "paths" / "p.yaml", "id: p\nname: Path\nmodule_ids: [intro, ghost]\n")
        with pytest.raises(ValueError, match="ghost"):
            ContentLoader(tmp_path)

    def test_invalid_module(self, tmp_path):
        _write(tmp_path / "modules" / "bad.yaml", "id: bad\ntitle: Bad\npages: []\n")
        with pytest.raises(ValueError, match="Invalid content"):
            ContentLoader(tmp_path)

    def test_unparseable_yaml(self, tmp_path):
        _write(tmp_path / "modules" / "bad.yaml", "id: [unclosed\n")
        with pytest.raises(ValueError, match="Cannot parse"):
            ContentLoader(tmp_path)

    def test_non_mapping(self, tmp_path):
        _write(tmp_path / "modules" / "list.yaml", "- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            ContentLoader(tmp_path)


class TestBundledContent:
    """The sample content shipped with the repository."""

    def test_sample_content_loads(self):
        loader = ContentLoader(PROJECT_CONTENT)
        assert {m.id for m in loader.get_modules()} == {"food-safety", "welcome"}
        food = loader.get_module("food-safety")
        assert food.quiz_page_indices == [0, 1]
        assert [m.id for m in loader.get_path_modules("store-onboarding")] == ["welcome", "food-safety"]
        quiz = loader.get_path("store-onboarding").final_quiz
        assert quiz.passing_score == 75
        assert quiz.max_attempts == 2
        assert len(quiz.questions) == 4
