DESCRIPTOR = {
    "name": "FreeImages",
    "searchUrl": "https://www.freeimages.com/search/{query}",
    "navigationTimeout": 60000,
    "selectors": {
        "imageLinks": "div.MosaicAsset-module__container___L9x3s > a",
        "consentButtons": ["button#onetrust-accept-btn-handler"],
    },
    "scrolling": {
        "strategy": "infinite_scroll",
        "maxScrolls": 10,
        "scrollDelay": 2500,
        "noNewImagesRetries": 3,
    },
    "imageExtraction": {
        "type": "link_collection",
        "filters": ["^https://www.freeimages.com"],
    },
    "fullSizeActions": {
        "type": "detail_page",
        "selectors": ["img[data-testid=\"photo-details-image\"]"],
        "attribute": "src",
        "waitStrategy": "locator",
        "timeout": 10000,
    },
}
