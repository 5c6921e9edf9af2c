DESCRIPTOR = {
    "name": "Unsplash",
    "searchUrl": "https://unsplash.com/s/photos/{query}",
    "queryTransformations": ["trim", "toLowerCase", "spacesToHyphens"],
    "selectors": {
        "images": "figure a[href*=\"/photos/\"] img[srcset]",
    },
    "scrolling": {
        "strategy": "infinite_scroll",
        "maxScrolls": 15,
        "scrollDelay": 2500,
        "noNewImagesRetries": 3,
    },
    "imageExtraction": {
        "type": "attribute",
        "attributes": ["srcset"],
        "filters": ["!images.unsplash.com/profile-", "!images.unsplash.com/placeholder-"],
    },
    "fullSizeActions": {
        # sizing params; without them the CDN serves the original
        "type": "url_cleaning",
        "removeParams": ["w", "h", "fit", "crop", "q", "fm", "auto", "ixlib", "cs"],
    },
}
