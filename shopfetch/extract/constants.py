"""Markup selectors and limits for Tokopedia pages."""

# Listing page
PRODUCT_CARD = ".css-54k5sq"
CARD_TITLE = '[data-testid="linkProductName"]'
CARD_PRICE = '[data-testid="linkProductPrice"]'
CARD_IMAGE = '[data-testid="imgProduct"]'
CARD_LINK = "a"
CARD_STATUS = ".css-1bqlscy"
CARD_RATING = ".prd_rating-average-text"
CARD_SOLD = ".prd_label-integrity"
CARD_CAMPAIGN = '[aria-label="campaign"]'
SHOP_NAME = '[data-testid="shopNameHeader"]'
SHOP_LOCATION = '[data-testid="shopLocationHeader"]'

# Detail page
DETAIL_TITLE = 'h1[data-testid="lblPDPDetailProductName"]'
DETAIL_PRICE = 'div[data-testid="lblPDPDetailProductPrice"]'
DETAIL_DESCRIPTION = 'div[data-testid="lblPDPDescriptionProduk"]'
DETAIL_THUMBNAILS = '[data-testid="PDPImageThumbnail"] img'
DETAIL_MAIN_IMAGE = '[data-testid="PDPMainImage"]'
DETAIL_VARIANT_BUTTONS = '.css-hayuji [data-testid^="btnVariantChip"] button'

# Limits
DEFAULT_MAX_LISTING_ITEMS = 20
MAX_PRODUCT_IMAGES = 5

# Thumbnail URLs are rewritten to the larger rendition
THUMBNAIL_SIZE_TOKEN = "100-square"
FULL_SIZE_TOKEN = "500-square"
