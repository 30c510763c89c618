"""
Focused tests for asset collection and rewriting without network.
"""

from keepsake.core.assets import Asset, AssetCollector, AssetDownloader, AssetRewriter


PAGE_URL = "https://example.com/blog/post"


def test_collect_finds_images_stylesheets_and_css_urls():
    html = '''<html><head>
    <link rel="stylesheet" href="/css/site.css">
    <link rel="shortcut icon" href="/favicon.ico">
    <style>div{background:url('/img/bg.png')} .x{background:url(data:image/png;base64,AAAA)}</style>
    </head><body>
    <img src="logo.png" srcset="logo-2x.png 2x, logo.png 1x">
    <img src="data:image/gif;base64,R0lGOD">
    <div style="background-image: url(&quot;/img/hero.jpg&quot;)"></div>
    </body></html>'''

    urls = [a.url for a in AssetCollector().collect(html, PAGE_URL)]

    assert urls == [
        "https://example.com/blog/logo.png",
        "https://example.com/blog/logo-2x.png",
        "https://example.com/css/site.css",
        "https://example.com/favicon.ico",
        "https://example.com/img/hero.jpg",
        "https://example.com/img/bg.png",
    ]


def test_html_rewrite_basic():
    html = '''<html><head>
    <link rel="stylesheet" href="/css/site.css">
    <style>div{background:url('/img/bg.png')}</style>
    </head><body>
    <img src="https://example.com/img/logo.png" srcset="https://example.com/img/logo.png 2x">
    <img src="/img/other.png">
    </body></html>'''
    mapping = {
        'https://example.com/img/logo.png': Asset(url='', type='image', attr='src', archive_path='assets/a1-logo.png'),
        'https://example.com/css/site.css': Asset(url='', type='stylesheet', attr='href', archive_path='assets/b2-site.css'),
        'https://example.com/img/bg.png': Asset(url='', type='image', attr='style', archive_path='assets/c3-bg.png'),
    }

    rewritten = AssetRewriter().rewrite_html(html, 'https://example.com/page', mapping)

    assert 'src="assets/a1-logo.png"' in rewritten
    assert 'srcset="assets/a1-logo.png 2x"' in rewritten
    assert 'href="assets/b2-site.css"' in rewritten
    assert "url(assets/c3-bg.png)" in rewritten
    assert 'src="/img/other.png"' in rewritten


def test_css_rewrite_relative_to_stylesheet():
    mapping = {
        'https://example.com/img/bg.png': Asset(url='', type='image', attr='css', archive_path='assets/c3-bg.png'),
        'https://example.com/css/print.css': Asset(url='', type='stylesheet', attr='css', archive_path='assets/d4-print.css'),
    }
    css = "@import 'print.css'; body { background: url(\"../img/bg.png\") }"

    rewritten = AssetRewriter().rewrite_css(css, 'https://example.com/css/site.css', mapping, relative_to='assets')

    assert "@import 'd4-print.css'" in rewritten
    assert "url(c3-bg.png)" in rewritten


def test_archive_names_are_unique_and_readable():
    downloader = AssetDownloader(fetcher=None)

    a = downloader.archive_name("https://example.com/a/logo.png")
    b = downloader.archive_name("https://cdn.example.net/logo.png")
    c = downloader.archive_name("https://example.com/image?id=4", "image/png")

    assert a.startswith("assets/") and a.endswith("-logo.png")
    assert a != b
    assert c.endswith("-image.png")
