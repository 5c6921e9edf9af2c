# A single archive page; the search query is ignored.
DESCRIPTOR = {
    "name": "LittleVisuals",
    "searchUrl": "http://littlevisuals.co/",
    "navigationTimeout": 60000,
    "selectors": {
        "imageLinks": "a[href*=\"cloudfront.net/\"][href$=\".jpg\"]",
    },
    "scrolling": {"strategy": "none"},
    "imageExtraction": {
        "type": "attribute",
        "attribute": "href",
    },
    "fullSizeActions": {"type": "direct"},
}
