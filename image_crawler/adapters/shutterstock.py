# Watermarked previews only.
DESCRIPTOR = {
    "name": "Shutterstock (Preview)",
    "searchUrl": "https://www.shutterstock.com/search/{query}",
    "navigationTimeout": 60000,
    "selectors": {
        "imageLinks": "div[data-automation=\"mosaic-grid-cell-link\"] > a",
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
        "baseUrl": "https://www.shutterstock.com",
    },
    "fullSizeActions": {
        "type": "detail_page",
        "selectors": ["img[data-automation=\"preview-image-element\"]", "picture img"],
        "attribute": "src",
        "waitStrategy": "locator_any",
        "timeout": 3000,
    },
}
