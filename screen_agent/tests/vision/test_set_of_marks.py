from PIL import Image

from screen_agent.vision.set_of_marks import MARK_COLOR, collect_elements, find_element, mark_elements
from screen_agent.vision.ui_dump import RawNode


def _nodes():
    return [
        RawNode(clickable=True, bounds=(0, 0, 100, 100), text="A"),
        RawNode(clickable=False, bounds=(0, 0, 50, 50), text="not clickable"),
        RawNode(clickable=True, bounds=None, text="no bounds"),
        RawNode(clickable=True, bounds=(10, 10, 10, 60), text="zero width"),
        RawNode(clickable=True, bounds=(0, 0, 3000, 100), text="too wide"),
        RawNode(clickable=True, bounds=(200, 300, 400, 401), label="B"),
    ]


def test_collect_elements_ids_are_contiguous_from_one():
    elements = collect_elements(_nodes())

    assert [e.mark_id for e in elements] == [1, 2]
    assert elements[0].text == "A"
    assert elements[1].accessibility_label == "B"


def test_element_center_uses_integer_midpoint():
    elements = collect_elements(_nodes())
    assert (elements[1].center_x, elements[1].center_y) == (300, 350)


def test_mark_elements_draws_badges_without_touching_input():
    screenshot = Image.new("RGB", (500, 500), (255, 255, 255))

    annotated, elements = mark_elements(_nodes(), screenshot)

    assert len(elements) == 2
    assert annotated is not screenshot
    assert screenshot.getpixel((1, 50)) == (255, 255, 255)
    assert annotated.getpixel((1, 50)) == MARK_COLOR


def test_mark_elements_with_no_clickable_nodes_returns_original():
    screenshot = Image.new("RGB", (100, 100))
    annotated, elements = mark_elements([RawNode(clickable=False, bounds=(0, 0, 10, 10))], screenshot)

    assert elements == []
    assert annotated is screenshot


def test_find_element():
    elements = collect_elements(_nodes())
    assert find_element(elements, 2).accessibility_label == "B"
    assert find_element(elements, 7) is None
