import unittest

from lxml import etree

from docx_factory import (
    CT_FOOTER,
    TARGET_IMAGE,
    TEMPLATE_FOOTER1,
    TEMPLATE_HEADER2,
    TEMPLATE_IMAGE,
    TEMPLATE_STYLES,
    build_docx,
    document_xml,
    header_xml,
    paragraph,
    relationships_xml,
    style,
    target_parts,
    template_docx,
    template_parts,
)

from docx_merge.config import MergeConfig
from docx_merge.headers import preview_template_parts, replace_headers_and_footers, section_properties
from docx_merge.merge_log import MergeLog
from docx_merge.package import (
    DOCUMENT_PART,
    HEADER_CONTENT_TYPE,
    ContentTypes,
    DocxPackage,
    Relationships,
)
from docx_merge.xml_utils import NS, qn


def _packages(
    target_overrides: dict | None = None,
    template_overrides: dict | None = None,
) -> tuple[DocxPackage, DocxPackage]:
    target = DocxPackage.open(build_docx(target_parts(target_overrides)))
    template = DocxPackage.open(build_docx(template_parts(template_overrides)))
    return target, template


def _references(package: DocxPackage) -> list[tuple[str, str, str]]:
    root = package.require_xml(DOCUMENT_PART)
    rels = Relationships.from_package(package, DOCUMENT_PART)
    found = []
    for sect_pr in section_properties(root):
        for child in sect_pr:
            if etree.QName(child).localname not in ("headerReference", "footerReference"):
                continue
            rel = rels.get(child.get(qn("r:id")))
            found.append((etree.QName(child).localname, child.get(qn("w:type")), rels.target_part(rel)))
    return found


class ReplaceHeadersTests(unittest.TestCase):
    def test_parts_copied_with_title(self) -> None:
        target, template = _packages()
        log = MergeLog()
        report = replace_headers_and_footers(target, template, "Quality Manual", MergeConfig(), log, "a.docx")

        header1 = target.get_text("word/header1.xml")
        self.assertIn("Quality Manual", header1)
        self.assertNotIn("{Enter SOP Title}", header1)
        self.assertEqual(target.get_text("word/header2.xml"), TEMPLATE_HEADER2)
        self.assertEqual(target.get_text("word/footer1.xml"), TEMPLATE_FOOTER1)
        self.assertEqual(report.titled_parts, ["word/header1.xml"])
        self.assertEqual(
            report.replaced_parts,
            ["word/header1.xml", "word/header2.xml", "word/footer1.xml"],
        )
        self.assertTrue(target.has_part("word/footer3.xml"))

    def test_references_replaced(self) -> None:
        target, template = _packages()
        report = replace_headers_and_footers(target, template, None, MergeConfig())
        self.assertEqual(
            _references(target),
            [
                ("headerReference", "default", "word/header1.xml"),
                ("headerReference", "first", "word/header2.xml"),
                ("footerReference", "default", "word/footer1.xml"),
            ],
        )
        self.assertEqual(report.references_rewired, 3)
        sect_pr = section_properties(target.require_xml(DOCUMENT_PART))[0]
        tags = [etree.QName(child).localname for child in sect_pr]
        self.assertEqual(tags[:3], ["headerReference", "headerReference", "footerReference"])
        self.assertIn("titlePg", tags)
        self.assertLess(tags.index("pgSz"), tags.index("titlePg"))

    def test_replacement_is_not_duplicated(self) -> None:
        target, template = _packages()
        replace_headers_and_footers(target, template, None, MergeConfig())
        second = DocxPackage.open(template_docx())
        replace_headers_and_footers(target, second, None, MergeConfig())
        self.assertEqual(len(_references(target)), 3)
        sect_pr = section_properties(target.require_xml(DOCUMENT_PART))[0]
        self.assertEqual(len(sect_pr.findall("w:titlePg", namespaces=NS)), 1)

    def test_every_section_rewired(self) -> None:
        body = (
            '<w:p><w:pPr><w:sectPr><w:headerReference w:type="default" r:id="rId7"/>'
            "</w:sectPr></w:pPr></w:p>" + paragraph("Second section")
        )
        target, template = _packages({"word/document.xml": document_xml(body)})
        replace_headers_and_footers(target, template, None, MergeConfig())
        references = _references(target)
        self.assertEqual(len(references), 6)
        self.assertNotIn(("headerReference", "default", None), references)

    def test_header_media_copied_without_clobbering_target(self) -> None:
        target, template = _packages()
        report = replace_headers_and_footers(target, template, None, MergeConfig())
        self.assertEqual(target.get_part("word/media/image1.png"), TARGET_IMAGE)
        self.assertEqual(target.get_part("word/media/image1_tpl1.png"), TEMPLATE_IMAGE)
        self.assertEqual(report.copied_resources, ["word/media/image1_tpl1.png"])
        rels = Relationships.from_package(target, "word/header1.xml")
        rel = rels.get("rId1")
        self.assertEqual(rels.target_part(rel), "word/media/image1_tpl1.png")

    def test_identical_media_reused(self) -> None:
        target, template = _packages({"word/media/image1.png": TEMPLATE_IMAGE})
        report = replace_headers_and_footers(target, template, None, MergeConfig())
        self.assertEqual(report.copied_resources, ["word/media/image1.png"])
        self.assertFalse(target.has_part("word/media/image1_tpl1.png"))

    def test_content_types_registered(self) -> None:
        target, template = _packages()
        replace_headers_and_footers(target, template, None, MergeConfig())
        types = ContentTypes.from_package(target)
        self.assertEqual(types.override_for("word/header2.xml"), HEADER_CONTENT_TYPE)
        self.assertEqual(types.override_for("word/footer1.xml"), CT_FOOTER)

    def test_title_is_escaped(self) -> None:
        target, template = _packages()
        replace_headers_and_footers(target, template, "R&D <Plan>", MergeConfig())
        header1 = target.require_xml("word/header1.xml")
        texts = [node.text for node in header1.iter(qn("w:t"))]
        self.assertIn("R&D <Plan>", texts)

    def test_placeholder_kept_when_title_disabled(self) -> None:
        target, template = _packages()
        report = replace_headers_and_footers(
            target, template, "Quality Manual", MergeConfig(extract_title=False)
        )
        self.assertIn("{Enter SOP Title}", target.get_text("word/header1.xml"))
        self.assertEqual(report.titled_parts, [])

    def test_header_styles_merged(self) -> None:
        target, template = _packages()
        report = replace_headers_and_footers(target, template, None, MergeConfig())
        self.assertEqual(report.style_report.replaced, ["Header"])
        self.assertEqual(report.style_report.added, ["FooterChar"])

    def test_missing_section_properties_warns(self) -> None:
        target, template = _packages({"word/document.xml": document_xml(paragraph("Body"), sect_pr="")})
        log = MergeLog()
        report = replace_headers_and_footers(target, template, None, MergeConfig(), log, "a.docx")
        self.assertEqual(report.references_rewired, 0)
        self.assertEqual(len(report.replaced_parts), 3)
        warnings = log.warnings_for("a.docx")
        self.assertTrue(any("section properties" in entry.message for entry in warnings))

    def test_missing_target_styles_warns(self) -> None:
        target, template = _packages({"word/styles.xml": None})
        log = MergeLog()
        report = replace_headers_and_footers(target, template, None, MergeConfig(), log, "a.docx")
        self.assertIsNone(report.style_report)
        self.assertEqual(report.references_rewired, 3)


    def test_styles_merged_for_headers_outside_fixed_slots(self) -> None:
        sect_pr = (
            "<w:sectPr>"
            '<w:headerReference w:type="default" r:id="rId10"/>'
            '<w:headerReference w:type="even" r:id="rId14"/>'
            '<w:footerReference w:type="default" r:id="rId11"/>'
            '<w:pgSz w:w="12240" w:h="15840"/>'
            "</w:sectPr>"
        )
        target, template = _packages(
            template_overrides={
                "word/document.xml": document_xml(paragraph("Template body"), sect_pr),
                "word/_rels/document.xml.rels": relationships_xml(
                    [
                        ("rId1", "styles", "styles.xml"),
                        ("rId10", "header", "header1.xml"),
                        ("rId11", "footer", "footer1.xml"),
                        ("rId14", "header", "header4.xml"),
                    ]
                ),
                "word/header4.xml": header_xml(
                    '<w:p><w:pPr><w:pStyle w:val="TplBanner"/></w:pPr>'
                    "<w:r><w:t>Even page</w:t></w:r></w:p>"
                ),
                "word/styles.xml": TEMPLATE_STYLES.replace(
                    "</w:styles>",
                    style("TplBanner", body='<w:pPr><w:jc w:val="right"/></w:pPr>')
                    + "</w:styles>",
                ),
            }
        )
        report = replace_headers_and_footers(target, template, None, MergeConfig())
        self.assertIn("word/header4.xml", report.replaced_parts)
        self.assertIn("TplBanner", report.style_report.added)
        styles = target.require_xml("word/styles.xml")
        ids = [node.get(qn("w:styleId")) for node in styles.iterfind("w:style", namespaces=NS)]
        self.assertIn("TplBanner", ids)

    def test_title_page_cleared_when_template_has_none(self) -> None:
        target_sect_pr = (
            "<w:sectPr>"
            '<w:headerReference w:type="default" r:id="rId7"/>'
            '<w:headerReference w:type="first" r:id="rId7"/>'
            '<w:footerReference w:type="default" r:id="rId9"/>'
            '<w:pgSz w:w="12240" w:h="15840"/>'
            "<w:titlePg/>"
            "</w:sectPr>"
        )
        template_sect_pr = (
            "<w:sectPr>"
            '<w:headerReference w:type="default" r:id="rId10"/>'
            '<w:footerReference w:type="default" r:id="rId11"/>'
            '<w:pgSz w:w="12240" w:h="15840"/>'
            "</w:sectPr>"
        )
        target, template = _packages(
            {"word/document.xml": document_xml(paragraph("Body"), target_sect_pr)},
            {"word/document.xml": document_xml(paragraph("Template body"), template_sect_pr)},
        )
        replace_headers_and_footers(target, template, None, MergeConfig())
        self.assertEqual(
            _references(target),
            [
                ("headerReference", "default", "word/header1.xml"),
                ("footerReference", "default", "word/footer1.xml"),
            ],
        )
        sect_pr = section_properties(target.require_xml(DOCUMENT_PART))[0]
        self.assertIsNone(sect_pr.find("w:titlePg", namespaces=NS))

    def test_title_is_escaped_inside_attributes(self) -> None:
        header = header_xml(
            '<w:sdt><w:sdtPr><w:tag w:val="{Enter SOP Title}"/></w:sdtPr>'
            "<w:sdtContent><w:p><w:r><w:t>{Enter SOP Title}</w:t></w:r></w:p></w:sdtContent>"
            "</w:sdt>"
        )
        target, template = _packages(template_overrides={"word/header1.xml": header})
        title = 'The "Gold" Batch & Co'
        replace_headers_and_footers(target, template, title, MergeConfig())
        header1 = target.require_xml("word/header1.xml")
        self.assertEqual(header1.find(".//w:tag", namespaces=NS).get(qn("w:val")), title)
        self.assertEqual([node.text for node in header1.iter(qn("w:t"))], [title])


class PreviewTests(unittest.TestCase):
    def test_preview_template_parts(self) -> None:
        previews = preview_template_parts(DocxPackage.open(template_docx()))
        self.assertEqual([preview.part_name for preview in previews], [
            "word/header1.xml",
            "word/header2.xml",
            "word/footer1.xml",
        ])
        self.assertTrue(previews[0].has_placeholder)
        self.assertEqual(previews[0].text, "{Enter SOP Title} Acme Corp")
        self.assertEqual(previews[2].kind, "footer")

    def test_preview_malformed_part(self) -> None:
        template = DocxPackage.open(template_docx({"word/footer1.xml": "<w:ftr"}))
        preview = preview_template_parts(template)[-1]
        self.assertEqual(preview.text, "Preview not available")


if __name__ == "__main__":
    unittest.main()
