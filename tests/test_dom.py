"""Canonical tree parsing and serialization."""

from live_dom import Node, Parse, ParseFragment
from live_markup import HEAD, Document


class TestParse:
    def test_body_serializes_like_outer_html(self):
        document = Parse("<div a='1'><span>x</span></div>")

        assert document.body.OuterHTML() == '<body><div a="1"><span>x</span></div></body>'

    def test_void_elements_have_no_closing_tag(self):
        assert Parse('<p>a<br>b<img src="x.png"/></p>').body.InnerHTML() == '<p>a<br>b<img src="x.png"></p>'

    def test_text_is_escaped_again(self):
        assert Parse("<p>a &amp; b &lt;c&gt;</p>").body.InnerHTML() == "<p>a &amp; b &lt;c&gt;</p>"

    def test_raw_text_is_kept(self):
        assert Parse("<div><script>if (a < b) {}</script></div>").body.InnerHTML() == (
            "<div><script>if (a < b) {}</script></div>"
        )

    def test_duplicate_attribute_last_wins(self):
        node = Parse('<p class="a" id="x" class="b"></p>').body.Find([0])

        assert list(node.attrs.items()) == [("class", "b"), ("id", "x")]

    def test_full_document_splits_head_and_body(self):
        document = Parse(Document("<p>x</p>", "de"))

        assert document.html.attrs == {"lang": "de"}
        assert [child.tag for child in document.head.Elements()] == ["meta", "meta"]
        assert document.body.InnerHTML() == "<p>x</p>"
        assert HEAD.startswith("<head>")

    def test_unmatched_end_tags_are_ignored(self):
        assert Parse("<div>a</span></div>").body.InnerHTML() == "<div>a</div>"


class TestAddressing:
    def test_path_and_find(self):
        document = Parse("<div></div>text<ul><li>a</li><li>b</li></ul>")
        item = document.body.Find([1, 1])

        assert item.OuterHTML() == "<li>b</li>"
        assert item.Path() == [1, 1]
        assert document.body.Path() == []

    def test_find_out_of_range(self):
        document = Parse("<div></div>")

        assert document.body.Find([3]) is None
        assert document.body.Find([0, 0]) is None

    def test_ancestors_stop_before_body(self):
        leaf = Parse("<main><p><b>x</b></p></main>").body.Find([0, 0, 0])

        assert [node.tag for node in leaf.Ancestors()] == ["p", "main"]

    def test_outer_html_exclusion(self):
        node = Parse('<a href="/" data-on-event="click=go">x</a>').body.Find([0])

        assert node.OuterHTML(frozenset({"data-on-event"})) == '<a href="/">x</a>'

    def test_fragment_nodes_are_detached(self):
        nodes = ParseFragment("<i>a</i> b")

        assert isinstance(nodes[0], Node)
        assert nodes[0].parent is None
        assert nodes[1] == " b"


class TestTreeConstruction:
    def test_rows_get_an_implied_tbody(self):
        document = Parse("<table><tr><td>1</td></tr></table>")

        assert document.body.InnerHTML() == "<table><tbody><tr><td>1</td></tr></tbody></table>"
        assert document.body.Find([0, 0, 0, 0]).OuterHTML() == "<td>1</td>"

    def test_cells_get_an_implied_row(self):
        document = Parse("<table><thead><th>h</th></thead><td>a<td>b</table>")

        assert document.body.InnerHTML() == (
            "<table><thead><tr><th>h</th></tr></thead>"
            "<tbody><tr><td>a</td><td>b</td></tr></tbody></table>"
        )

    def test_cols_get_an_implied_colgroup(self):
        assert Parse("<table><col><tr><td>x</td></tr></table>").body.InnerHTML() == (
            "<table><colgroup><col></colgroup><tbody><tr><td>x</td></tr></tbody></table>"
        )

    def test_table_parts_outside_a_table_are_dropped(self):
        assert Parse("<div><td>x</td></div>").body.InnerHTML() == "<div>x</div>"

    def test_block_element_closes_the_paragraph(self):
        document = Parse("<p>a<div>b</div>")

        assert document.body.InnerHTML() == "<p>a</p><div>b</div>"
        assert [node.tag for node in document.body.Elements()] == ["p", "div"]

    def test_inline_element_stays_in_the_paragraph(self):
        assert Parse("<p>a<span>b</span>c</p>").body.InnerHTML() == "<p>a<span>b</span>c</p>"

    def test_stray_paragraph_end_tag_makes_an_empty_paragraph(self):
        assert Parse("<div>a</p></div>").body.InnerHTML() == "<div>a<p></p></div>"

    def test_list_items_close_each_other(self):
        assert Parse("<ul><li>a<li>b</ul>").body.InnerHTML() == "<ul><li>a</li><li>b</li></ul>"

    def test_nested_list_keeps_outer_item_open(self):
        markup = "<ul><li>a<ul><li>b</li></ul></li></ul>"

        assert Parse(markup).body.InnerHTML() == markup

    def test_definition_terms_and_options_close(self):
        assert Parse("<dl><dt>t<dd>d</dl>").body.InnerHTML() == "<dl><dt>t</dt><dd>d</dd></dl>"
        assert Parse("<select><option>a<option>b</select>").body.InnerHTML() == (
            "<select><option>a</option><option>b</option></select>"
        )

    def test_heading_inside_heading_closes_it(self):
        assert Parse("<h1>a<h2>b</h2>").body.InnerHTML() == "<h1>a</h1><h2>b</h2>"

    def test_self_closing_flag_is_ignored_for_html_elements(self):
        assert Parse("<div/>x").body.InnerHTML() == "<div>x</div>"

    def test_self_closing_flag_is_kept_in_svg(self):
        assert Parse('<svg><path d="M0"/><rect/></svg>').body.InnerHTML() == (
            '<svg><path d="M0"></path><rect></rect></svg>'
        )


class TestFragmentContext:
    def test_cell_parses_inside_a_row(self):
        nodes = ParseFragment("<td>2</td>", "tr")

        assert [node.OuterHTML() for node in nodes] == ["<td>2</td>"]

    def test_row_parses_inside_a_section(self):
        nodes = ParseFragment("<tr><td>2</td></tr>", "tbody")

        assert [node.OuterHTML() for node in nodes] == ["<tr><td>2</td></tr>"]

    def test_cell_is_dropped_in_body_context(self):
        assert ParseFragment("<td>2</td>") == ["2"]
