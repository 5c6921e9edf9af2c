DESCRIPTOR = {
    "name": "Google",
    "searchUrl": "https://www.google.com/search?q={query}&tbm=isch&hl=en&safe={safeSearchParam}",
    "selectors": {
        "images": "img[data-src], img[src^=\"http\"]",
        "consentButtons": [
            "button[aria-label=\"Accept all\"]",
            "button[aria-label=\"Alles akzeptieren\"]",
            "button[aria-label=\"Tout accepter\"]",
            "button[aria-label=\"Accetta tutto\"]",
            "button[aria-label=\"Aceptar todo\"]",
        ],
        "showMoreButton": "input[type=\"button\"][value=\"Show more results\"]",
    },
    "scrolling": {
        "strategy": "infinite_scroll",
        "maxScrolls": 20,
        "scrollDelay": 2000,
        "noNewImagesRetries": 3,
    },
    "imageExtraction": {
        "type": "attribute",
        "attributes": ["data-src", "src"],
        "filters": ["!gstatic.com/images", "!googlelogo_color", "!google.com/logos"],
    },
    "fullSizeActions": {"type": "direct"},
    "searchParamsConfig": {
        "safeSearch": {"paramName": "safe", "onValue": "active", "offValue": "off"},
    },
}
