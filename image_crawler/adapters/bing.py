# Thumbnails carry the media URL in their "m" attribute (JSON, key "murl").
DESCRIPTOR = {
    "name": "Bing",
    "searchUrl": "https://www.bing.com/images/search?q={query}&form=HDRSC2&first=1&tsc=ImageBasicHover&adlt={safeSearchParam}",
    "selectors": {
        "thumbnails": "a.iusc",
        "consentButtons": ["#bnp_btn_accept", "button[aria-label=\"Accept\"]"],
        "lightboxImages": ["#iv_stage img#mainImage", ".ivg_img.loaded", "img.nofocus"],
    },
    "scrolling": {
        "strategy": "infinite_scroll",
        "maxScrolls": 15,
        "scrollDelay": 2000,
        "noNewImagesRetries": 3,
    },
    "imageExtraction": {
        "type": "json_attribute",
        "attribute": "m",
        "jsonPath": "murl",
        "fallback": {"type": "nested_attribute", "selector": "img", "attributes": ["src", "data-src"]},
    },
    "fullSizeActions": {
        "type": "lightbox",
        "clickTarget": "self",
        "waitStrategy": "locator",
        "imageSelectors": ["#iv_stage img#mainImage", ".ivg_img.loaded", "img.nofocus"],
        "waitDelay": 1500,
    },
    "searchParamsConfig": {
        "safeSearch": {"paramName": "adlt", "onValue": "strict", "offValue": "off"},
    },
}
