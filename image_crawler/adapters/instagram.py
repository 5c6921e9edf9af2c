# Instagram hashtag pages. Needs a logged-in storage state (see save_session)
# for more than the first screen of posts.
DESCRIPTOR = {
    "name": "Instagram",
    "searchUrl": "https://www.instagram.com/explore/tags/{query}/",
    "queryTransformations": ["trim", "toLowerCase"],
    "selectors": {
        "imageLinks": "a[href*='/p/'], a[href*='/reel/']",
        "consentButtons": [
            "button:has-text('Only allow essential cookies')",
            "button:has-text('Allow all cookies')",
            "button:has-text('Accept')",
        ],
    },
    "scrolling": {
        "strategy": "infinite_scroll",
        "maxScrolls": 30,
        "scrollDelay": 1500,
        "noNewImagesRetries": 6,
        "stepRatio": 0.75,
    },
    "imageExtraction": {
        "type": "attribute_collection",
        "baseUrl": "https://www.instagram.com",
        "thumbnailSelector": "img",
        "thumbnailUrlAttribute": ["srcset", "src"],
        "titleSelector": "img",
        "titleAttribute": ["alt"],
    },
    "fullSizeActions": {
        "type": "detail_page",
        "selectors": ["article img[srcset]", "main img[srcset]", "article img"],
        "attribute": "srcset",
        "waitStrategy": "locator_any",
        "timeout": 4000,
    },
}
