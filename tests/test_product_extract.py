"""
Tests for the title / image / price cascades and the extraction engine.
"""

import pytest

import product_extract
from product_extract import (
    ExtractedProduct,
    ImagePolicy,
    PageDocument,
    clean_price,
    extract_image,
    extract_price,
    extract_product,
    extract_title,
    is_valid_image_url,
    run_in_page,
)

PAGE_URL = "https://shop.example.com/products/wooden-train?ref=home"


def doc(body: str, head: str = "", url: str = PAGE_URL) -> PageDocument:
    return PageDocument(f"<html><head>{head}</head><body>{body}</body></html>", url)


# ---------------------------------------------------------------------------
# End to end
# ---------------------------------------------------------------------------

class TestScenarios:
    def test_open_graph_page_with_dollar_text(self):
        html = """
        <html><head>
          <title>Wooden Train Set | Toy Barn</title>
          <meta property="og:title" content="Wooden Train Set">
          <meta property="og:image" content="https://cdn.example.com/train.jpg">
        </head><body>
          <div class="hero"><p>Only $34.99 while stocks last</p></div>
        </body></html>
        """
        product = extract_product(PageDocument(html, PAGE_URL))
        assert product.title == "Wooden Train Set"
        assert product.image == "https://cdn.example.com/train.jpg"
        assert product.price == "34.99"
        assert product.url == PAGE_URL
        assert product.domain == "shop.example.com"

    def test_empty_page_is_well_formed(self):
        product = extract_product(PageDocument("", "https://example.com/"))
        assert product == ExtractedProduct(url="https://example.com/", domain="example.com")

    def test_run_in_page_returns_plain_dict(self):
        out = run_in_page("<h1>Rocking Horse</h1>", "https://toys.example.com/horse")
        assert out == {
            "title": "Rocking Horse",
            "image": "",
            "price": "",
            "url": "https://toys.example.com/horse",
            "domain": "toys.example.com",
        }

    def test_extraction_is_idempotent(self):
        html = """
        <head><meta property="og:image" content="https://cdn.example.com/a.jpg"></head>
        <body><h1 class="product-name">Stacking Rings</h1><span class="price">$12.00</span></body>
        """
        page = PageDocument(html, PAGE_URL)
        assert extract_product(page) == extract_product(page)

    def test_failing_extractor_only_blanks_its_field(self, monkeypatch):
        def broken(_doc):
            raise RuntimeError("boom")

        monkeypatch.setattr(
            product_extract,
            "FIELD_EXTRACTORS",
            (("title", extract_title), ("image", broken), ("price", extract_price)),
        )
        product = extract_product(doc('<h1>Puzzle</h1><span class="price">$9.50</span>'))
        assert product.title == "Puzzle"
        assert product.image == ""
        assert product.price == "9.50"


# ---------------------------------------------------------------------------
# Title
# ---------------------------------------------------------------------------

class TestTitle:
    def test_marketplace_selector_beats_open_graph(self):
        page = doc(
            '<span id="productTitle">  Echo Dot (5th Gen)  </span>',
            head='<meta property="og:title" content="Amazon.com: Echo Dot">',
        )
        assert extract_title(page) == "Echo Dot (5th Gen)"

    def test_too_long_candidate_is_skipped(self):
        page = doc(
            f'<h1 class="product-title">{"x" * 600}</h1>',
            head='<meta property="og:title" content="Short Name">',
        )
        assert extract_title(page) == "Short Name"

    def test_empty_element_is_skipped(self):
        page = doc('<div data-test="product-title">   </div><h1>Balance Bike</h1>')
        assert extract_title(page) == "Balance Bike"

    def test_falls_back_to_document_title_before_pipe(self):
        page = doc("<p>nothing here</p>", head="<title>Play Kitchen | Toy Barn</title>")
        assert extract_title(page) == "Play Kitchen"

    def test_falls_back_to_document_title_before_dash(self):
        page = doc("<p>nothing here</p>", head="<title>Play Kitchen - Toy Barn</title>")
        assert extract_title(page) == "Play Kitchen"

    def test_no_title_anywhere(self):
        assert extract_title(doc("<p>nothing</p>")) == ""


# ---------------------------------------------------------------------------
# Image
# ---------------------------------------------------------------------------

class TestImage:
    def test_open_graph_image_wins_over_everything(self):
        page = doc(
            '<img id="landingImage" src="https://cdn.example.com/landing.jpg">'
            '<img src="https://cdn.example.com/huge.jpg" width="3000" height="3000">',
            head='<meta property="og:image" content="https://cdn.example.com/og.jpg">',
        )
        assert extract_image(page) == "https://cdn.example.com/og.jpg"

    def test_invalid_meta_falls_through(self):
        page = doc(
            '<img id="landingImage" src="https://cdn.example.com/landing.jpg">',
            head='<meta property="og:image" content="https://cdn.example.com/site-logo.png">',
        )
        assert extract_image(page) == "https://cdn.example.com/landing.jpg"

    def test_lazy_loaded_data_src(self):
        page = doc('<div class="product-image-wrap"><img data-src="https://cdn.example.com/lazy.jpg"></div>')
        assert extract_image(page) == "https://cdn.example.com/lazy.jpg"

    def test_dynamic_image_json_uses_first_key(self):
        page = doc(
            """<img id="landingImage" data-a-dynamic-image='{"https://m.media-amazon.com/I/big.jpg":[1500,1500],"https://m.media-amazon.com/I/small.jpg":[300,300]}'>"""
        )
        assert extract_image(page) == "https://m.media-amazon.com/I/big.jpg"

    def test_malformed_dynamic_image_json_is_swallowed(self):
        page = doc(
            """<img id="landingImage" data-a-dynamic-image='{"https://m.media-amazon.com/I/big.jpg":'>"""
            '<img src="https://cdn.example.com/fallback.jpg" width="400" height="400">'
        )
        assert extract_image(page) == "https://cdn.example.com/fallback.jpg"

    def test_largest_image_skips_denylisted_urls(self):
        page = doc(
            '<img src="https://cdn.example.com/Tracking/big.gif" width="2000" height="2000">'
            '<img src="https://cdn.example.com/SITE-LOGO.png" width="1500" height="1500">'
            '<img src="https://cdn.example.com/shoe.jpg" width="400" height="400">'
        )
        assert extract_image(page) == "https://cdn.example.com/shoe.jpg"

    def test_natural_size_preferred_over_rendered(self):
        page = doc(
            '<img src="https://cdn.example.com/a.jpg" width="500" height="500" style="width:50px;height:50px">'
            '<img src="https://cdn.example.com/b.jpg" style="width:300px;height:300px">'
        )
        assert extract_image(page) == "https://cdn.example.com/a.jpg"

    def test_ties_keep_first_seen(self):
        page = doc(
            '<img src="https://cdn.example.com/first.jpg" width="200" height="200">'
            '<img src="https://cdn.example.com/second.jpg" width="200" height="200">'
        )
        assert extract_image(page) == "https://cdn.example.com/first.jpg"

    def test_area_must_exceed_threshold(self):
        page = doc('<img src="https://cdn.example.com/thumb.jpg" width="100" height="100">')
        assert extract_image(page) == ""

    def test_threshold_is_configurable(self):
        page = doc('<img src="https://cdn.example.com/thumb.jpg" width="100" height="100">')
        assert extract_image(page, ImagePolicy(min_area=5_000)) == "https://cdn.example.com/thumb.jpg"

    def test_relative_fallback_src_is_resolved(self):
        page = doc('<img src="/media/train.jpg" width="300" height="300">')
        assert extract_image(page) == "https://shop.example.com/media/train.jpg"

    @pytest.mark.parametrize("url", [
        "https://cdn.example.com/1x1.gif",
        "https://cdn.example.com/Spacer.png",
        "https://ads.example.com/BEACON?id=1",
        "//cdn.example.com/photo.jpg",
        "",
    ])
    def test_invalid_image_urls(self, url):
        assert not is_valid_image_url(url)

    def test_data_image_url_is_valid(self):
        assert is_valid_image_url("data:image/png;base64,AAAA")


# ---------------------------------------------------------------------------
# Price
# ---------------------------------------------------------------------------

class TestPrice:
    @pytest.mark.parametrize("raw, expected", [
        ("$1,299.50", "1299.50"),
        ("USD 34", "34.00"),
        ("34.", "34.00"),
        ("Now: $0.99!", "0.99"),
        ("$0.00", ""),
        ("$100,000.00", ""),
        ("Call for price", ""),
        (",", ""),
        (None, ""),
    ])
    def test_clean_price(self, raw, expected):
        assert clean_price(raw) == expected

    def test_thousands_separator_in_selector(self):
        page = doc('<span class="a-price"><span class="a-offscreen">$1,299.50</span></span>')
        assert extract_price(page) == "1299.50"

    def test_zero_candidate_continues_cascade(self):
        page = doc(
            '<span class="a-price"><span class="a-offscreen">$0.00</span></span>'
            '<span itemprop="price" content="19.99">$19.99</span>'
        )
        assert extract_price(page) == "19.99"

    def test_out_of_range_candidate_continues_cascade(self):
        page = doc(
            '<div id="priceblock_ourprice">$150,000.00</div>',
            head='<meta property="product:price:amount" content="25">',
        )
        assert extract_price(page) == "25.00"

    def test_data_price_attribute_beats_text(self):
        page = doc('<div data-price="1299.5">Call for price</div>')
        assert extract_price(page) == "1299.50"

    def test_text_fallback_ignores_scripts(self):
        page = doc('<script>var p = "$999.00";</script><p>Today only $12.50</p>')
        assert extract_price(page) == "12.50"

    def test_text_fallback_joins_inline_markup(self):
        page = doc("<p>Now only $<b>34.99</b> today</p>")
        assert extract_price(page) == "34.99"

    def test_text_fallback_keeps_blocks_apart(self):
        page = doc("<div>Save $</div><div>5 today, then pay $18.00</div>")
        assert extract_price(page) == "18.00"

    def test_no_price_is_empty_string(self):
        assert extract_price(doc("<p>Free shipping on orders</p>")) == ""
