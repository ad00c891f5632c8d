# Centralized selectors and header aliases for the gateway's virtual terminal

LOGIN_URL = "https://www.braintreegateway.com/login"

SELECTORS = {
    "login": [
        'form[action="/session"]',
        "#login",
        "#password",
        "input.login-submit-button",
    ],
    "otp": [
        'form[action="/session/two_factor"]',
        'input[name="code"]',
        "h2.unified-login__title",
    ],
    "dashboard": [
        "input#q.unified-panel-search_input",
        'a[href*="/transactions/advanced_search"]',
        "h4.graph-title",
    ],
    # primary target first, fallback second
    "transactions_link": [
        "a[onclick*=\"trackClick('transactions')\"]",
        'a[href*="/transactions/advanced_search"]',
    ],
    "new_transaction_link": [
        "a[onclick*=\"trackClick('new_transaction')\"]",
        'a[href$="/transactions/new"]',
    ],
    "new_transaction_page": ["body.transactions_new"],
    "result_page": [
        "body.transactions_show",
        "span.transaction-status",
    ],
}

OTP_TITLE_SELECTOR = "h2.unified-login__title"
OTP_TITLE_TEXT = "Two-Factor Authentication"

PAGE_HEADING_SELECTOR = "h2"
NEW_TRANSACTION_HEADINGS = ["New Transaction", "Transaction Create"]
RESULT_HEADING = "Transaction Detail"

FORM_ID = "transaction_form"
SUBMIT_BUTTON = "#create_transaction_btn"
STATUS_TEXT_SELECTOR = 'span.transaction-status, span[class*="transaction-status"]'

FORM_SELECTORS = {
    "merchant_account": "#transaction_merchant_account_id",
    "amount": "#transaction_amount",
    "order_id": "#transaction_order_id",
    "customer_first_name": "#transaction_customer_first_name",
    "cardholder_name": "#transaction_credit_card_cardholder_name",
    "card_number": "#transaction_credit_card_number",
    "expiration_date": "#transaction_credit_card_expiration_date",
    "cvv": "#transaction_credit_card_cvv",
    "billing_postal_code": "#transaction_billing_postal_code",
    "billing_company": "#transaction_billing_company",
    "billing_first_name": "#transaction_billing_first_name",
    "billing_street": "#transaction_billing_street_address",
    "billing_region": "#transaction_billing_region",
    "billing_country": "#transaction_billing_country_name",
    "skip_fraud_check": "#transaction_options_skip_advanced_fraud_checking",
}

# Fields the sequencer waits for (best-effort) before typing anything
SECONDARY_FIELDS = ["amount", "order_id", "card_number"]

FIELD_ALIASES = {
    "merchant_account": ["MAIDS", "Merchant Account", "Merchant Account ID"],
    "amount": ["Amount"],
    "order_id": ["Reservation ID", "Order ID"],
    "customer_first_name": ["Hotel Name", "First Name"],
    "card_first4": ["Card first 4", "Card First 4", "First 4"],
    "card_last12": ["Card last 12", "Card Last 12", "Last 12"],
    "expiration_date": ["Expiry", "Expiration", "Expiration Date (MM/YYYY)", "Expiration Date", "Exp Date"],
    "cvv": ["CVV", "Security Code", "CVV2"],
    "status": ["STATUS", "Status", "status"],
}

STATUS_HEADER = "STATUS"
MIN_CVV_DIGITS = 3
CARD_FIRST_DIGITS = 4
CARD_LAST_DIGITS = 12
COUNTRY_NAME = "United States of America"

BROWSER_ARGS = [
    "--start-maximized",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
    "--disable-features=IsolateOrigins,site-per-process,TranslateUI",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-infobars",
    "--no-first-run",
    "--no-default-browser-check",
    "--password-store=basic",
    "--use-mock-keychain",
]
