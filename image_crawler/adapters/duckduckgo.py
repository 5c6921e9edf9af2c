# Results are proxied thumbnails; the original URL sits in the "u" parameter.
DESCRIPTOR = {
    "name": "DuckDuckGo",
    "searchUrl": "https://duckduckgo.com/?q={query}&iax=images&ia=images&kp={safeSearchParam}",
    "selectors": {
        "images": "img.tile--img__img",
        "loadMoreButton": ".results--more a.result--more__btn",
    },
    "scrolling": {
        "strategy": "load_more_button_or_scroll",
        "maxAttempts": 15,
        "scrollDelay": 2000,
        "loadMoreTimeout": 10000,
    },
    "imageExtraction": {
        "type": "attribute",
        "attributes": ["src", "data-src"],
    },
    "fullSizeActions": {
        "type": "url_param_decode",
        "paramName": "u",
        "decode": True,
    },
    "searchParamsConfig": {
        "safeSearch": {"paramName": "kp", "onValue": "-1", "offValue": "1"},
    },
}
