DESCRIPTOR = {
    "name": "ArtStation",
    "searchUrl": "https://www.artstation.com/search?sort_by=relevance&query={query}",
    "selectors": {
        "imageLinks": "a.project-image, figure.project-image-container a",
        "consentButtons": ["button#onetrust-accept-btn-handler"],
    },
    "scrolling": {
        "strategy": "infinite_scroll",
        "maxScrolls": 20,
        "scrollDelay": 1500,
        "noNewImagesRetries": 6,
        "stepRatio": 0.75,
    },
    "imageExtraction": {
        "type": "attribute_collection",
        "baseUrl": "https://www.artstation.com",
        "thumbnailSelector": "img",
        "thumbnailUrlAttribute": ["srcset", "src"],
        "titleSelector": "img",
        "titleAttribute": ["alt"],
        "filters": ["/artwork/"],
    },
    "fullSizeActions": {
        "type": "detail_page",
        "selectors": ["main picture img", ".project-assets-item img", "img.img-fit"],
        "waitStrategy": "locator_any",
        "timeout": 5000,
    },
}
