DESCRIPTOR = {
    "name": "AdobeStock",
    "searchUrl": "https://stock.adobe.com/search?k={query}",
    "navigationTimeout": 60000,
    "selectors": {
        "imageLinks": "div.thumb-frame a",
        "consentButtons": [".evidon-banner-acceptbutton", ".accept-cookies-button"],
    },
    "scrolling": {
        "strategy": "infinite_scroll",
        "maxScrolls": 5,
        "scrollDelay": 2000,
        "noNewImagesRetries": 2,
    },
    "imageExtraction": {
        "type": "link_collection",
        "baseUrl": "https://stock.adobe.com",
    },
    "fullSizeActions": {
        "type": "detail_page",
        "selectors": ["img[data-t=\"details-thumbnail-image\"]"],
        "attribute": "src",
        "waitStrategy": "locator",
        "timeout": 15000,
        "navigationWaitUntil": "networkidle",
    },
    "apiKeyInstructions": "Get your Adobe Stock API key from the Adobe Developer Console.",
}
