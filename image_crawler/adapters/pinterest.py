# Pinterest pin search. Grid cards carry a srcset whose last entry is the
# largest rendition, so no detail-page visit is needed.
DESCRIPTOR = {
    "name": "Pinterest",
    "searchUrl": "https://www.pinterest.com/search/pins/?q={query}&rs=typed",
    "selectors": {
        "images": "div[data-test-id='pinWrapper'] img, div[data-test-id='pin'] img",
        "consentButtons": [
            "button[aria-label='Accept all']",
            "button:has-text('Accept all')",
            "div[role='dialog'] button:has-text('Accept')",
            "button:has-text('Allow all cookies')",
        ],
    },
    "scrolling": {
        "strategy": "infinite_scroll",
        "maxScrolls": 40,
        "scrollDelay": 1200,
        "noNewImagesRetries": 8,
        "stepRatio": 0.6,                  # Pinterest unloads cards far above the viewport
    },
    "imageExtraction": {
        "type": "attribute",
        "attributes": ["srcset", "data-srcset", "src", "data-src"],
        "filters": ["^https://i.pinimg.com/", "!/75x75_RS/"],
    },
    "fullSizeActions": {"type": "direct"},
}
