import pytest
from bs4 import BeautifulSoup

from app.features.preview.schemas.preview import ExtractedData
from app.features.preview.services.extractor_service import (
    ContentExtractor,
    fallback_image,
    is_significant_image,
    merge_first_wins,
    open_graph,
    twitter_card,
    visible_text,
)


@pytest.fixture
def extractor():
    return ContentExtractor()


def soup_of(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


class TestOpenGraph:
    def test_extracts_open_graph_data(self, extractor):
        html = """
        <html>
          <head>
            <meta property="og:title" content="Test Product" />
            <meta property="og:image" content="https://example.com/image.jpg" />
            <meta property="og:price:amount" content="99.99" />
            <meta property="og:price:currency" content="USD" />
            <meta property="og:site_name" content="Test Store" />
          </head>
        </html>
        """
        result = extractor.extract(html)

        assert result.title == "Test Product"
        assert result.image == "https://example.com/image.jpg"
        assert result.price == "99.99"
        assert result.currency == "USD"
        assert result.site_name == "Test Store"

    def test_og_title_beats_title_tag(self, extractor):
        html = """
        <html><head>
          <title>Fallback</title>
          <meta property="og:title" content="OG Title" />
        </head></html>
        """
        assert extractor.extract(html).title == "OG Title"

    def test_currency_needs_an_og_price(self):
        soup = soup_of('<meta property="og:price:currency" content="EUR" />')
        assert "currency" not in open_graph(soup)

    def test_currency_is_not_taken_when_price_comes_from_text(self, extractor):
        html = """
        <html><head><meta property="og:price:currency" content="EUR" /></head>
        <body><p>Only $12.50 today</p></body></html>
        """
        result = extractor.extract(html)
        assert result.price == "$12.50"
        assert result.currency == ""

    def test_values_are_trimmed(self, extractor):
        html = '<meta property="og:title" content="   Padded Title  " />'
        assert extractor.extract(html).title == "Padded Title"


class TestTwitterCard:
    def test_used_when_open_graph_is_missing(self, extractor):
        html = """
        <html><head>
          <title>Page Title</title>
          <meta name="twitter:title" content="Tweet Title" />
          <meta name="twitter:image" content="https://cdn.example.com/card.png" />
          <meta name="twitter:site" content="@examplestore" />
        </head></html>
        """
        result = extractor.extract(html)

        assert result.title == "Tweet Title"
        assert result.image == "https://cdn.example.com/card.png"
        assert result.site_name == "@examplestore"

    def test_never_overwrites_open_graph(self, extractor):
        html = """
        <meta property="og:title" content="OG Title" />
        <meta name="twitter:title" content="Tweet Title" />
        <meta name="twitter:image" content="https://cdn.example.com/card.png" />
        """
        result = extractor.extract(html)

        assert result.title == "OG Title"
        assert result.image == "https://cdn.example.com/card.png"

    def test_empty_og_value_falls_through(self):
        soup = soup_of('<meta property="og:title" content="" /><meta name="twitter:title" content="T" />')
        merged = merge_first_wins(open_graph(soup), twitter_card(soup))
        assert merged["title"] == "T"


class TestFallback:
    def test_title_tag_and_first_image(self, extractor):
        html = """
        <html>
          <head><title>Fallback Title</title></head>
          <body><img src="https://example.com/image.jpg" alt="Product" /></body>
        </html>
        """
        result = extractor.extract(html)

        assert result.title == "Fallback Title"
        assert result.image == "https://example.com/image.jpg"

    def test_title_is_trimmed(self, extractor):
        assert extractor.extract("<title>\n   Spaced Out \n</title>").title == "Spaced Out"

    def test_skips_chrome_and_tracking_images(self, extractor):
        html = """
        <body>
          <img src="/static/site-logo.png" />
          <img src="/img/a.png" class="user-avatar" />
          <img src="/img/b.png" alt="Share button" />
          <img src="https://t.example.com/pixel.gif" />
          <img src="/img/c.png" width="50" height="300" />
          <img src="/img/d.png" height="20px" />
          <img src="" />
          <img src="/img/product-large.jpg" width="800" />
        </body>
        """
        assert extractor.extract(html).image == "/img/product-large.jpg"

    def test_unparseable_dimensions_do_not_exclude(self):
        img = soup_of('<img src="/p.jpg" width="auto" height="100%" />').img
        assert is_significant_image(img) is True

    def test_no_qualifying_image(self):
        soup = soup_of('<img src="/favicon.ico" /><img src="/thumbs/1.jpg" />')
        assert fallback_image(soup) == {}

    def test_price_from_body_text(self, extractor):
        html = """
        <html>
          <head><title>Product</title></head>
          <body>
            <p>Price: $99.99</p>
            <p>Was $120</p>
          </body>
        </html>
        """
        assert extractor.extract(html).price == "$99.99"

    def test_price_from_price_element(self, extractor):
        html = """
        <body>
          <div class="product-Price">EUR 1.299,00</div>
        </body>
        """
        # No body-text pattern matches "EUR 1.299,00", so the class scan picks the digits
        assert extractor.extract(html).price == "1.299"

    def test_price_element_matched_by_id(self, extractor):
        html = '<body><span id="priceblock">cost 45</span></body>'
        assert extractor.extract(html).price == "45"

    def test_scripts_are_not_price_sources(self):
        soup = soup_of("<body><script>var p = '$5.00';</script><p>Hello</p></body>")
        assert "$5.00" not in visible_text(soup)

    def test_site_name_sources_in_order(self, extractor):
        html = """
        <head>
          <meta name="apple-mobile-web-app-title" content="Apple Name" />
          <meta name="application-name" content="App Name" />
        </head>
        """
        assert extractor.extract(html).site_name == "App Name"

    def test_site_name_from_apple_title(self, extractor):
        html = '<meta name="apple-mobile-web-app-title" content="  Shop  " />'
        assert extractor.extract(html).site_name == "Shop"


class TestOEmbed:
    def test_detects_json_oembed(self):
        soup = soup_of(
            '<link rel="alternate" type="application/json+oembed" href="https://example.com/oembed?url=x" />'
        )
        assert ContentExtractor.find_oembed_link(soup) == "https://example.com/oembed?url=x"

    def test_detects_xml_oembed(self):
        soup = soup_of('<link type="text/xml+oembed" href="/oembed.xml" />')
        assert ContentExtractor.find_oembed_link(soup) == "/oembed.xml"

    def test_contributes_no_fields(self, extractor):
        html = '<link type="application/json+oembed" href="/oembed.json" />'
        assert extractor.extract(html) == ExtractedData()


class TestDegradation:
    @pytest.mark.parametrize(
        "html",
        [
            "",
            "   ",
            None,
            "<<<>>>",
            "<html><head><title>Unclosed",
            "<div><p><span>no closing tags",
            "<![CDATA[ weird ]]><meta property='og:title' content='Still Works'>",
        ],
    )
    def test_never_raises(self, extractor, html):
        assert isinstance(extractor.extract(html), ExtractedData)

    def test_broken_markup_still_yields_metadata(self, extractor):
        html = "<html><head><meta property='og:title' content='Still Works'><body><img src='/big.jpg'"
        assert extractor.extract(html).title == "Still Works"

    def test_missing_fields_lists_empty_ones(self, extractor):
        data = ExtractedData(title="T", price="$1")
        assert extractor.missing_fields(data) == ["image", "currency", "site_name"]
