import math

import pytest

from docflow.processors.organize import SplitOptions
from docflow.workflow.registry import default_registry
from docflow.workflow.settings import (
    read_bool,
    read_choice,
    read_color,
    read_int,
    read_int_list,
    read_number,
    read_str,
    translate_settings,
)


GARBAGE = {
    "angle": "sideways",
    "fontSize": math.nan,
    "opacity": 7,
    "quality": ["high"],
    "splitMode": 3,
    "pagesPerSplit": -2,
    "pageRange": 12,
    "pageRanges": None,
    "position": True,
    "count": 1000,
    "color": "red",
    "fontColor": "#GGGGGG",
    "pageOrder": "1,two,3",
    "format": "gif",
    "scale": "huge",
    "userPassword": "x" * 200,
    "password": 42,
    "filename": "   ",
    "margin": -5,
    "startNumber": 0,
    "minSize": 1.5,
    "keywords": {"a": 1},
    "removeLinks": "yes",
    "divisionType": "diagonal",
    "pagesPerSheet": 3,
    "gridLayout": "9x9",
    "columns": 0,
    "overlap": -1,
    "targetSize": "B5",
    "backgroundColor": "blue",
    "applyTo": 5,
    "threshold": 0.1,
    "fontFamily": "comic sans",
    "flattenForms": False,
    "flattenAnnotations": False,
}


def test_read_number():
    assert read_number({"v": "2.5"}, "v", 1) == 2.5
    assert read_number({"v": True}, "v", 1) == 1
    assert read_number({"v": math.inf}, "v", 1) == 1
    assert read_number({"v": 500}, "v", 1, maximum=100) == 1
    assert read_number({}, "v", 3) == 3


def test_read_int():
    assert read_int({"v": 4.0}, "v", 1) == 4
    assert read_int({"v": 4.5}, "v", 1) == 1
    assert read_int({"v": "7"}, "v", 1, minimum=1) == 7
    assert read_int({"v": 0}, "v", 1, minimum=1) == 1


def test_read_bool_only_accepts_booleans():
    assert read_bool({"v": False}, "v", True) is False
    assert read_bool({"v": "false"}, "v", True) is True
    assert read_bool({"v": 0}, "v", True) is True


def test_read_str_and_choice():
    assert read_str({"v": "  "}, "v", "fallback") == "fallback"
    assert read_str({"v": 3}, "v", "fallback") == "fallback"
    assert read_choice({"v": "RANGES"}, "v", ("every", "ranges"), "every") == "ranges"
    assert read_choice({"v": "other"}, "v", ("every", "ranges"), "every") == "every"


def test_read_color_normalizes():
    assert read_color({"c": "#abc"}, "c", "#000000") == "#AABBCC"
    assert read_color({"c": "ff0000"}, "c", "#000000") == "#FF0000"
    assert read_color({"c": "blue"}, "c", "#000000") == "#000000"


def test_read_int_list():
    assert read_int_list({"v": [3, 1.0, "2"]}, "v") == (3, 1, 2)
    assert read_int_list({"v": "3, 1,2"}, "v") == (3, 1, 2)
    assert read_int_list({"v": [1, "x"]}, "v", (9,)) == (9,)
    assert read_int_list({"v": [True]}, "v") == ()


def test_split_translation():
    options = translate_settings("split-pdf", {"splitMode": "ranges", "pageRanges": "1-2, 3"})
    assert options == SplitOptions(mode="ranges", pages_per_split=1, ranges="1-2, 3")
    assert translate_settings("split-pdf", {"splitMode": "ranges"}).mode == "single"
    assert translate_settings("split-pdf", {"pagesPerSplit": "3"}).pages_per_split == 3


def test_rotate_translation_rejects_odd_angles():
    assert translate_settings("rotate-pdf", {"angle": 45}).angle == 90
    assert translate_settings("rotate-pdf", {"angle": 270}).angle == 270
    assert translate_settings("rotate-pdf", {"angle": "-90"}).angle == -90


def test_add_blank_page_position():
    assert translate_settings("add-blank-page", {"position": 3}).position == "3"
    assert translate_settings("add-blank-page", {"position": "Start"}).position == "start"
    assert translate_settings("add-blank-page", {"position": "middle"}).position == "end"


def test_pdf_to_image_aliases_fix_the_format():
    assert translate_settings("pdf-to-jpg", {"format": "png"}).format == "jpeg"
    assert translate_settings("pdf-to-image", {"format": "jpg"}).format == "jpeg"
    assert translate_settings("pdf-to-image", {}).format == "png"


def test_encrypt_drops_overlong_passwords():
    options = translate_settings("encrypt-pdf", {"userPassword": "x" * 128, "ownerPassword": "owner"})
    assert options.user_password == ""
    assert options.owner_password == "owner"


def test_edit_metadata_keyword_list():
    options = translate_settings("edit-metadata", {"keywords": ["pdf", " tools ", 3]})
    assert options.keywords == "pdf, tools"


def test_non_mapping_settings_count_as_empty():
    assert translate_settings("split-pdf", None) == translate_settings("split-pdf", {})
    assert translate_settings("split-pdf", ["x"]) == translate_settings("split-pdf", {})
    assert translate_settings("no-such-kind", {"a": 1}) == {}


@pytest.mark.parametrize("settings", [{}, GARBAGE], ids=["empty", "garbage"])
def test_every_kind_translates_to_valid_options(settings):
    registry = default_registry()
    for entry in registry:
        options = registry.translate(entry.kind, settings)
        processor = entry.factory()
        resolved = processor.resolve_options(options)
        assert processor.validate_options(resolved) is None, entry.kind


def test_layout_translators():
    n_up = translate_settings("n-up-pdf", {"pagesPerSheet": "9", "pageSize": "letter", "addBorder": True})
    assert (n_up.pages_per_sheet, n_up.page_size, n_up.add_border) == (9, "LETTER", True)
    assert translate_settings("n-up-pdf", {"pagesPerSheet": 6}).pages_per_sheet == 4

    divide = translate_settings("divide-pages", {"divisionType": "GRID-2X2"})
    assert divide.division == "grid-2x2"

    combine = translate_settings("combine-single-page", {"orientation": "horizontal", "backgroundColor": "#abc"})
    assert (combine.direction, combine.background_color) == ("horizontal", "#AABBCC")


def test_table_of_contents_font_aliases():
    assert translate_settings("table-of-contents", {"fontFamily": "tiro"}).font_family == "times"
    assert translate_settings("table-of-contents", {"fontFamily": "Courier"}).font_family == "courier"
    assert translate_settings("table-of-contents", {}).font_family == "helvetica"


def test_flatten_never_translates_to_nothing():
    options = translate_settings("flatten-pdf", {"flattenForms": False, "flattenAnnotations": False})
    assert options.flatten_forms and options.flatten_annotations
    options = translate_settings("flatten-pdf", {"flattenAnnotations": False})
    assert options.flatten_forms and not options.flatten_annotations
