from gge_rollup.utils.tree_utils import (
    Composite,
    Leaf,
    find_node,
    flatten,
    parse_xml,
    read_tree,
)


def test_attributes_become_children():
    tree = parse_xml('<A x=" 1 "><B>2</B></A>')
    a = tree.get("A")
    assert isinstance(a, Composite)
    assert a.children == [("x", Leaf("1")), ("B", Leaf("2"))]


def test_text_of_element_with_children_goes_under_underscore():
    a = parse_xml("<A> заголовок <B>1</B></A>").get("A")
    assert a.text("_") == "заголовок"
    assert flatten(a) == {"_": "заголовок", "B": "1"}


def test_leaf_text_is_trimmed():
    a = parse_xml("<A><B>\n   12,5  \n</B></A>").get("A")
    assert a.text("B") == "12,5"


def test_flatten_joins_nested_keys():
    s = parse_xml("<S><Materials><Total><PriceCurrent>10</PriceCurrent></Total></Materials></S>").get("S")
    assert flatten(s) == {"Materials_Total_PriceCurrent": "10"}


def test_flatten_repeated_names_get_positions():
    s = parse_xml("<S><Item><V>1</V></Item><Item><V>2</V></Item><Other>x</Other></S>").get("S")
    assert flatten(s) == {"Item_0_V": "1", "Item_1_V": "2", "Other": "x"}


def test_flatten_empty():
    assert flatten(None) == {}
    assert flatten(Leaf("7"), "Total") == {"Total": "7"}


def test_find_node_prefers_direct_children():
    tree = parse_xml("<R><X><Name>глубоко</Name></X><Name>сверху</Name></R>")
    assert find_node(tree, "Name") == Leaf("сверху")


def test_find_node_descends_in_document_order():
    tree = parse_xml("<R><X><Y><Object>1</Object></Y></X><Z><Object>2</Object></Z></R>")
    assert find_node(tree, "Object") == Leaf("1")
    assert find_node(tree, "Missing") is None


def test_get_all_absent_one_many():
    obj = parse_xml("<Object><A>1</A><B>1</B><B>2</B></Object>").get("Object")
    assert obj.get_all("C") == []
    assert [n.text for n in obj.get_all("A")] == ["1"]
    assert [n.text for n in obj.get_all("B")] == ["1", "2"]


def test_path_text():
    item = parse_xml("<Item><Material><Code>ТЦ_1</Code></Material></Item>").get("Item")
    assert item.path_text("Material", "Code") == "ТЦ_1"
    assert item.path_text("Material", "Name", default="-") == "-"


def test_read_tree_cp1251_without_declaration(tmp_path):
    path = tmp_path / "doc.gge"
    path.write_bytes("<Construction><Name>Смета</Name></Construction>".encode("cp1251"))
    tree = read_tree(path)
    assert tree.path_text("Construction", "Name") == "Смета"


def test_read_tree_declared_encoding(tmp_path):
    path = tmp_path / "doc.gge"
    xml = '<?xml version="1.0" encoding="windows-1251"?><Construction><Name>Смета</Name></Construction>'
    path.write_bytes(xml.encode("cp1251"))
    assert read_tree(path).path_text("Construction", "Name") == "Смета"
