from screen_agent.vision.ui_dump import parse_bounds, parse_ui_dump

DUMP = """UI hierchary dumped to: /sdcard/screen_agent_ui.xml
<?xml version='1.0' encoding='UTF-8' standalone='yes' ?>
<hierarchy rotation="0">
  <node index="0" text="" resource-id="" class="android.widget.FrameLayout" content-desc="" clickable="false" bounds="[0,0][1080,2400]">
    <node index="0" text="Search" resource-id="com.demo:id/search" class="android.widget.EditText" content-desc="" clickable="true" bounds="[40,100][1040,220]" />
    <node index="1" text="" resource-id="" class="android.widget.ImageButton" content-desc="Settings" clickable="true" bounds="[900,2200][1040,2340]" />
  </node>
</hierarchy>"""


def test_parse_bounds():
    assert parse_bounds("[0,10][200,300]") == (0, 10, 200, 300)
    assert parse_bounds("") is None
    assert parse_bounds("garbage") is None


def test_parse_ui_dump_keeps_document_order():
    nodes = parse_ui_dump(DUMP)

    assert len(nodes) == 3
    assert nodes[0].clickable is False
    assert nodes[1].text == "Search"
    assert nodes[1].resource_id == "com.demo:id/search"
    assert nodes[1].bounds == (40, 100, 1040, 220)
    assert nodes[2].text is None
    assert nodes[2].label == "Settings"


def test_parse_ui_dump_tolerates_bad_xml():
    assert parse_ui_dump("") == []
    assert parse_ui_dump("<hierarchy><node") == []
