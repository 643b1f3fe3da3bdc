from __future__ import annotations

import json
from pathlib import Path
from zipfile import ZipFile, ZIP_DEFLATED

from lxml import etree
from docx import Document

ROOT = Path(__file__).resolve().parents[1]
FIXTURES_DIR = ROOT / "tests" / "fixtures"

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
NS = {"w": W_NS}
PLACEHOLDER = "{Enter SOP Title}"


def _save(doc: Document, name: str) -> Path:
    path = FIXTURES_DIR / name
    doc.save(path)
    return path


def _patch_zip(path: Path, updates: dict[str, bytes]) -> None:
    temp_path = path.with_suffix(".tmp")
    with ZipFile(path, "r") as src, ZipFile(temp_path, "w", ZIP_DEFLATED) as dst:
        for info in src.infolist():
            content = src.read(info.filename)
            if info.filename in updates:
                content = updates[info.filename]
            dst.writestr(info, content)
        for name, content in updates.items():
            if name not in src.namelist():
                dst.writestr(name, content)
    temp_path.replace(path)


def _number_paragraphs(document_xml: bytes, marker: str) -> bytes:
    root = etree.fromstring(document_xml)
    for paragraph in root.iter(f"{{{W_NS}}}p"):
        text = "".join(paragraph.itertext())
        if marker not in text.upper():
            continue
        p_pr = paragraph.find("w:pPr", namespaces=NS)
        if p_pr is None:
            p_pr = etree.Element(f"{{{W_NS}}}pPr")
            paragraph.insert(0, p_pr)
        num_pr = etree.SubElement(p_pr, f"{{{W_NS}}}numPr")
        etree.SubElement(num_pr, f"{{{W_NS}}}ilvl").set(f"{{{W_NS}}}val", "0")
        etree.SubElement(num_pr, f"{{{W_NS}}}numId").set(f"{{{W_NS}}}val", "1")
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", standalone=True)


def _make_template() -> Path:
    doc = Document()
    doc.styles["Normal"].font.name = "Arial"

    section = doc.sections[0]
    section.different_first_page_header_footer = True
    section.header.paragraphs[0].text = PLACEHOLDER
    section.header.add_paragraph("Acme Pharma Quality System")
    section.first_page_header.paragraphs[0].text = f"{PLACEHOLDER} (cover)"
    section.footer.paragraphs[0].text = "Controlled copy - do not print"
    doc.add_paragraph("Template body is ignored when merging.")
    return _save(doc, "SOP_TEMPLATE.docx")


def _make_template_without_headers() -> Path:
    doc = Document()
    doc.add_paragraph("No headers or footers here.")
    return _save(doc, "TPL_NO_HEADERS.docx")


def _make_target() -> Path:
    doc = Document()
    doc.core_properties.title = ""
    doc.styles["Normal"].font.name = "Times New Roman"
    doc.sections[0].header.paragraphs[0].text = "Cleaning Procedure Document Revision 3 MF0415"
    doc.sections[0].footer.paragraphs[0].text = "Old footer"
    doc.add_heading("1. PURPOSE", level=1)
    doc.add_paragraph("Describe how production equipment is cleaned.")
    doc.add_heading("2. SCOPE", level=1)
    doc.add_paragraph("Applies to all filling lines.")
    doc.add_paragraph("3. PROCEDURE")
    doc.add_paragraph("Remove product residue.", style="List Paragraph")
    run = doc.add_paragraph().add_run("Inline override")
    run.font.name = "Courier New"
    path = _save(doc, "SOP_TARGET.docx")
    with ZipFile(path, "r") as archive:
        document_xml = archive.read("word/document.xml")
    _patch_zip(path, {"word/document.xml": _number_paragraphs(document_xml, "PROCEDURE")})
    return path


def _make_target_without_procedure() -> Path:
    doc = Document()
    doc.core_properties.title = "Line Clearance"
    doc.add_paragraph("A document with no procedure heading.")
    return _save(doc, "SOP_TARGET_PLAIN.docx")


def _make_invalid() -> Path:
    path = FIXTURES_DIR / "INVALID.docx"
    path.write_text("invalid docx content", encoding="utf-8")
    return path


def _make_merge_config() -> Path:
    data = {
        "debugMode": True,
        "insertFlowChart": True,
        "preserveTargetFonts": False,
        "fontOverride": None,
        "extractTitle": True,
    }
    path = FIXTURES_DIR / "MERGE_CONFIG.json"
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


def main() -> None:
    FIXTURES_DIR.mkdir(parents=True, exist_ok=True)
    _make_template()
    _make_template_without_headers()
    _make_target()
    _make_target_without_procedure()
    _make_invalid()
    _make_merge_config()
    print(f"fixtures generated in {FIXTURES_DIR}")


if __name__ == "__main__":
    main()
