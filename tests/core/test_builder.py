from datetime import datetime

import pytest

from epubforge import EpubBuilder, EpubVersion
from epubforge.core.exceptions import (
    FilenameExistsError,
    InvalidMetadataError,
    ParentNotFoundError,
    SourceNotFoundError,
)
from epubforge.core.models import AssetClass


def _opf(builder, parse_xml):
    return parse_xml(builder.finalize()["OEBPS/content.opf"])


class TestSections:
    def test_sections_are_named_in_insertion_order(self, builder):
        assert builder.add_section("One", "<p>1</p>") == "section_1.xhtml"
        assert builder.add_section("Two", "<p>2</p>") == "section_2.xhtml"
        assert builder.add_sub_section("section_1.xhtml", "One.One", "<p>1.1</p>") == "section_3.xhtml"

    def test_sub_section_with_empty_parent_is_a_root(self, builder):
        builder.add_sub_section(None, "Root", "<p/>")
        builder.add_sub_section("", "Root too", "<p/>")
        assert [s.title for s in builder.sections.roots] == ["Root", "Root too"]

    def test_missing_parent_leaves_book_unchanged(self, builder, assets):
        builder.add_section("One", "<p>1</p>")
        with pytest.raises(ParentNotFoundError):
            builder.add_sub_section("nope.xhtml", "Lost", "<p/>", stylesheet=assets["css"])
        assert builder.sections.filenames() == ["section_1.xhtml"]
        assert builder.resources.count(AssetClass.STYLESHEET) == 0

    def test_duplicate_filename_leaves_book_unchanged(self, builder, assets):
        builder.add_section("Intro", "<p/>", filename="intro")
        with pytest.raises(FilenameExistsError):
            builder.add_section("Again", "<p/>", filename="intro.xhtml", stylesheet=assets["css"])
        assert len(builder.sections) == 1
        assert len(builder.resources) == 0

    def test_missing_stylesheet_leaves_book_unchanged(self, builder, missing_file):
        with pytest.raises(SourceNotFoundError):
            builder.add_section("Styled", "<p/>", stylesheet=missing_file)
        assert len(builder.sections) == 0

    def test_section_stylesheet_is_linked(self, builder, assets, parse_xml, ns):
        name = builder.add_section("Styled", "<p>x</p>", stylesheet=assets["css"])
        assert builder.sections.get(name).stylesheet == "style.css"
        doc = parse_xml(builder.finalize()[f"OEBPS/text/{name}"])
        hrefs = doc.xpath("x:head/x:link/@href", namespaces=ns)
        assert hrefs == ["../css/style.css"]


class TestResources:
    def test_add_methods_delegate_to_registry(self, builder, assets):
        assert builder.add_image(assets["photo"]) == "../images/photo.png"
        assert builder.add_font(assets["font"], "body.ttf") == "../fonts/body.ttf"
        assert builder.add_video(assets["video"]) == "../videos/clip.mp4"
        assert builder.add_audio(assets["audio"]) == "../audios/track.mp3"
        assert builder.add_stylesheet(assets["css"]) == "../css/style.css"
        assert len(builder.resources) == 5

    def test_missing_image_leaves_map_unchanged(self, builder, assets, missing_file):
        builder.add_image(assets["photo"])
        with pytest.raises(SourceNotFoundError):
            builder.add_image(missing_file)
        assert builder.resources.count(AssetClass.IMAGE) == 1

    def test_manifest_lists_every_resource(self, builder, assets, parse_xml, ns):
        builder.add_section("One", "<p/>")
        builder.add_image(assets["photo"])
        builder.add_font(assets["font"])
        root = _opf(builder, parse_xml)
        items = {i.get("href"): i.get("media-type") for i in root.findall("opf:manifest/opf:item", namespaces=ns)}
        assert items["images/photo.png"] == "image/png"
        assert items["fonts/serif.ttf"] == "font/ttf"
        assert items["text/section_1.xhtml"] == "application/xhtml+xml"


class TestMetadata:
    def test_set_metadata_rejects_unknown_fields(self, builder):
        with pytest.raises(InvalidMetadataError):
            builder.set_metadata(colour="blue")
        with pytest.raises(InvalidMetadataError):
            builder.set_metadata(date_published="2020-01-01")

    def test_rejected_set_metadata_applies_nothing(self, builder):
        with pytest.raises(InvalidMetadataError):
            builder.set_metadata(publisher="Harbour", colour="blue")
        with pytest.raises(InvalidMetadataError):
            builder.set_metadata(description="About", date_modified="yesterday")
        assert builder.metadata.publisher is None
        assert builder.metadata.description is None
        assert builder.metadata.date_modified is None

    def test_metadata_reaches_package(self, builder, parse_xml, ns):
        (builder.set_title("Renamed").add_creator("Ann").add_subject("Sea")
         .set_identifier("urn:isbn:42", scheme="ISBN").set_language("de")
         .set_metadata(publisher="Harbour", date_published=datetime(2021, 6, 1)))
        builder.add_section("One", "<p/>")
        md = _opf(builder, parse_xml).find("opf:metadata", namespaces=ns)
        assert md.findtext("dc:title", namespaces=ns) == "Renamed"
        assert md.findtext("dc:language", namespaces=ns) == "de"
        assert md.findtext("dc:identifier", namespaces=ns) == "urn:isbn:42"
        assert md.findtext("dc:publisher", namespaces=ns) == "Harbour"
        assert md.findtext("dc:creator", namespaces=ns) == "Ann"

    def test_defaults_from_configuration(self, builder):
        assert builder.metadata.language == "en"
        assert builder.metadata.generator.startswith("epubforge ")
        assert builder.metadata.identifier.value.startswith("urn:uuid:")

    def test_section_documents_inherit_book_language(self, builder, parse_xml):
        builder.set_language("it")
        name = builder.add_section("Uno", "<p/>")
        root = parse_xml(builder.finalize()[f"OEBPS/text/{name}"])
        assert root.get("lang") == "it"
        assert builder.sections.get(name).document.lang == ""


class TestFinalize:
    def test_empty_title_is_rejected(self, version):
        with pytest.raises(InvalidMetadataError) as excinfo:
            EpubBuilder("  ", version).finalize()
        assert excinfo.value.operation == "finalize"

    def test_document_set_epub2(self, parse_xml, ns):
        builder = EpubBuilder("Two", EpubVersion.V20)
        builder.add_section("S1", "<p/>")
        documents = builder.finalize()
        assert list(documents) == [
            "mimetype",
            "META-INF/container.xml",
            "OEBPS/content.opf",
            "OEBPS/toc.ncx",
            "OEBPS/text/section_1.xhtml",
        ]
        assert documents["mimetype"] == "application/epub+zip"
        container = parse_xml(documents["META-INF/container.xml"])
        assert container.xpath("//c:rootfile/@full-path", namespaces=ns) == ["OEBPS/content.opf"]

    def test_document_set_epub3(self):
        builder = EpubBuilder("Three", EpubVersion.V30)
        builder.add_section("S1", "<p/>")
        assert "OEBPS/nav.xhtml" in builder.finalize()
        assert "OEBPS/toc.ncx" not in builder.finalize()

    def test_nested_sections_in_ncx(self, parse_xml, ns):
        builder = EpubBuilder("Nested", EpubVersion.V20)
        s1 = builder.add_section("S1", "<p/>")
        builder.add_sub_section(s1, "S2", "<p/>")
        ncx = parse_xml(builder.finalize()["OEBPS/toc.ncx"])
        points = ncx.xpath("//ncx:navPoint", namespaces=ns)
        assert [(p.get("playOrder"), p.findtext("ncx:navLabel/ncx:text", namespaces=ns)) for p in points] == [
            ("0", "S1"), ("1", "S2"),
        ]
        assert points[1].getparent() is points[0]
        uid = ncx.xpath("ncx:head/ncx:meta[@name='dtb:uid']/@content", namespaces=ns)
        assert uid == [builder.metadata.identifier.value]

    def test_nested_sections_in_nav(self, parse_xml, ns):
        builder = EpubBuilder("Nested", EpubVersion.V30)
        s1 = builder.add_section("S1", "<p/>")
        builder.add_sub_section(s1, "S2", "<p/>")
        nav = parse_xml(builder.finalize()["OEBPS/nav.xhtml"])
        outer = nav.xpath("//x:nav/x:ol/x:li", namespaces=ns)
        assert len(outer) == 1
        assert outer[0].xpath("x:a/@href", namespaces=ns) == ["text/section_1.xhtml"]
        assert outer[0].xpath("x:ol/x:li/x:a/@href", namespaces=ns) == ["text/section_2.xhtml"]

    def test_spine_follows_preorder(self, builder, parse_xml, ns):
        s1 = builder.add_section("S1", "<p/>")
        builder.add_section("S2", "<p/>")
        builder.add_sub_section(s1, "S1.1", "<p/>")
        spine = _opf(builder, parse_xml).xpath("opf:spine/opf:itemref/@idref", namespaces=ns)
        assert spine == ["text-section_1.xhtml", "text-section_3.xhtml", "text-section_2.xhtml"]

    def test_navigation_item_in_manifest(self, builder, parse_xml, ns):
        builder.add_section("S1", "<p/>")
        root = _opf(builder, parse_xml)
        items = root.findall("opf:manifest/opf:item", namespaces=ns)
        if builder.version is EpubVersion.V20:
            assert items[0].get("href") == "toc.ncx"
            assert root.find("opf:spine", namespaces=ns).get("toc") == items[0].get("id")
        else:
            assert items[0].get("href") == "nav.xhtml"
            assert items[0].get("properties") == "nav"

    def test_finalize_is_repeatable(self, builder, assets):
        s1 = builder.add_section("S1", "<p>x</p>", stylesheet=assets["css"])
        builder.add_sub_section(s1, "S2", "<p>y</p>")
        builder.set_cover(assets["cover"])
        assert builder.finalize() == builder.finalize()


class TestOutput:
    def test_output_writes_layout(self, builder, assets, output_dir):
        builder.add_section("S1", "<p>x</p>", stylesheet=assets["css"])
        builder.set_cover(assets["cover"])
        builder.add_audio(assets["audio"])

        result = builder.output(output_dir)
        assert result == output_dir
        assert (output_dir / "mimetype").read_text(encoding="utf-8") == "application/epub+zip"
        assert (output_dir / "META-INF" / "container.xml").is_file()
        assert (output_dir / "OEBPS" / "content.opf").is_file()
        assert (output_dir / "OEBPS" / "text" / "section_1.xhtml").is_file()
        assert (output_dir / "OEBPS" / "text" / "cover.xhtml").is_file()
        assert (output_dir / "OEBPS" / "images" / "cover.jpg").read_bytes() == b"\xff\xd8\xff\xe0 cover"
        assert (output_dir / "OEBPS" / "css" / "style.css").is_file()
        assert (output_dir / "OEBPS" / "audios" / "track.mp3").is_file()
        nav_name = "toc.ncx" if builder.version is EpubVersion.V20 else "nav.xhtml"
        assert (output_dir / "OEBPS" / nav_name).is_file()

    def test_output_without_title_writes_nothing(self, version, output_dir):
        with pytest.raises(InvalidMetadataError):
            EpubBuilder("", version).output(output_dir)
        assert not output_dir.exists()


class TestHrefEncoding:
    def test_references_are_percent_encoded(self, builder, assets, parse_xml, ns):
        name = builder.add_section("Notes", "<p/>", filename="my notes", stylesheet=assets["css"])
        assert name == "my notes.xhtml"
        documents = builder.finalize()
        assert "OEBPS/text/my notes.xhtml" in documents

        items = _opf(builder, parse_xml).xpath("opf:manifest/opf:item/@href", namespaces=ns)
        assert "text/my%20notes.xhtml" in items
        if builder.version is EpubVersion.V20:
            ncx = parse_xml(documents["OEBPS/toc.ncx"])
            assert ncx.xpath("//ncx:content/@src", namespaces=ns) == ["text/my%20notes.xhtml"]
        else:
            nav = parse_xml(documents["OEBPS/nav.xhtml"])
            assert nav.xpath("//x:nav/x:ol/x:li/x:a/@href", namespaces=ns) == ["text/my%20notes.xhtml"]

    def test_cover_image_src_is_percent_encoded(self, builder, assets, tmp_path, parse_xml, ns):
        spaced = tmp_path / "front page.jpg"
        spaced.write_bytes(b"\xff\xd8\xff\xe0 spaced")
        builder.set_cover(str(spaced))
        assert builder.resources.names(AssetClass.IMAGE) == ["front page.jpg"]
        doc = parse_xml(builder.finalize()["OEBPS/text/cover.xhtml"])
        assert doc.xpath("//x:img/@src", namespaces=ns) == ["../images/front%20page.jpg"]
        items = _opf(builder, parse_xml).xpath("opf:manifest/opf:item/@href", namespaces=ns)
        assert "images/front%20page.jpg" in items
