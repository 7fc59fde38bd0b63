"""
utils/constants.py

Purpose: Centralized static content

- All user-facing messages for tenant bots and the master console
- Button labels and callback data
- Reusable enums and constants

(Prevents hardcoding across the codebase)
"""

# ============================================================
# ACCESS GATE
# ============================================================

PLAN_EXPIRED_MESSAGE = """🚫 <b>This bot's plan has expired!</b>
Please contact support to renew."""

USER_LIMIT_MESSAGE = """🚫 <b>User limit reached!</b>

This bot has reached the maximum of {max_users} users in its plan.
Please contact the administrator."""

# ============================================================
# WIZARD ENGINE
# ============================================================

FLOW_CANCELLED_MESSAGE = "❌ Operation cancelled."

FLOW_RESET_MESSAGE = """⚠️ <b>Your previous operation could not be resumed.</b>
It has been reset, please start again."""

OWNER_ONLY_MESSAGE = "⛔ Access restricted to the bot owner."

EMPTY_INPUT_MESSAGE = "✍️ Please send a text message, or /cancel to abort."

SAVE_FAILED_MESSAGE = "❌ Could not save your settings right now. Please try again."

# ============================================================
# OWNER: PAYMENT CREDENTIALS
# ============================================================

ASK_PAYMENT_ID_MESSAGE = """💳 <b>SyncPay Setup (Step 1/2)</b>

Please send your SyncPay <b>Client ID</b>:"""

ASK_PAYMENT_SECRET_MESSAGE = """💳 <b>Step 2/2</b>

Now send your SyncPay <b>Client Secret</b>:"""

PAYMENT_SAVED_MESSAGE = "✅ SyncPay configured!"

# ============================================================
# OWNER: AI CREDENTIALS
# ============================================================

ASK_AI_KEY_MESSAGE = """⚠️ <b>Attention:</b> the AI only works with <b>YOUR</b> API key.

Send your key now (it starts with sk-...).
Without it the bot's intelligence stays switched off."""

INVALID_AI_KEY_MESSAGE = "❌ Invalid key. It must start with 'sk-'. Try again or /cancel."

ASK_AI_MODEL_MESSAGE = "🤖 <b>Choose the AI model:</b>"

INVALID_AI_MODEL_MESSAGE = "❌ Unknown model. Pick one of the buttons above or /cancel."

AI_SAVED_MESSAGE = """✅ <b>AI configured!</b>
Model: {model}"""

AI_MODELS = {
    "gpt-4o-mini": "GPT-4o Mini (Default)",
    "gpt-4o": "GPT-4o (Powerful)",
    "gpt-3.5-turbo": "GPT-3.5 Turbo (Legacy)",
}

# ============================================================
# OWNER: PROMPT
# ============================================================

ASK_PROMPT_MESSAGE = """🎭 <b>Customize Personality (Prompt)</b>

How should the bot behave? (Seller, Support, Friend...)

<i>Current:</i> {current}

Send the new instruction text now:"""

PROMPT_SAVED_MESSAGE = """✅ <b>Personality set!</b>
The AI will now follow your new instructions."""

# ============================================================
# OWNER: DASHBOARD
# ============================================================

OWNER_DASHBOARD_MESSAGE = """👑 <b>Owner Panel ({name})</b>

📊 <b>Status:</b> {status}
👥 <b>Users:</b> {users}/{max_users}
💳 <b>Payments (SyncPay):</b> {payment_status}
🧠 <b>Artificial Intelligence:</b>
   ├ Key: {ai_key_status}
   └ Model: {ai_model}
🔑 <b>Bot Token:</b> {token}

<i>Configure your credentials below:</i>"""

STATUS_ACTIVE = "✅ Active"
STATUS_INACTIVE = "❌ Inactive (Blocked)"
STATUS_EXPIRED = "🚫 Expired (Blocked)"
PAYMENT_CONFIGURED = "✅ Configured"
PAYMENT_PENDING = "⚠️ Pending"
AI_KEY_ACTIVE = "✅ Own key (Active)"
AI_KEY_MISSING = "🔴 Not configured (AI off)"

RELOAD_DONE_MESSAGE = "✅ Settings reloaded successfully!"
RELOAD_FAILED_MESSAGE = "❌ Could not reload settings."

RENEWAL_GENERATING_MESSAGE = "⏳ <b>Generating charge...</b> Please wait a moment."

RENEWAL_CHARGE_MESSAGE = """💰 <b>Subscription Renewal</b>
Amount: R$ {amount}
Customer: <b>{name}</b>

Copy the code below and pay in your bank app:"""

RENEWAL_CODE_MESSAGE = "<code>{code}</code>"

RENEWAL_INFO_MESSAGE = "ℹ️ As soon as the payment is confirmed your plan is renewed automatically for +30 days."

RENEWAL_FAILED_MESSAGE = "❌ Could not generate the charge right now. Please try again later."

PAYMENT_CONFIRMED_MESSAGE = """✅ <b>Payment Confirmed!</b>

Your subscription was renewed successfully.
New expiration: <b>{expiration}</b>"""

# ============================================================
# END USER MENU
# ============================================================

USER_MENU_MESSAGE = """👋 <b>Hello, {first_name}! Welcome to the System</b> 🚀

WhatsApp automation with AI and lead rotation.

👇 <b>Choose an option from the menu below:</b>"""

CHAT_ID_MESSAGE = "🆔 ID: <code>{chat_id}</code>"

BROADCAST_SOON_MESSAGE = "📢 Broadcast menu coming soon!"
AFFILIATES_SOON_MESSAGE = "🤝 Affiliate area coming soon!"
PLANS_SOON_MESSAGE = "💎 Plans area coming soon!"
SUPPORT_SOON_MESSAGE = "👤 Support coming soon!"

# ============================================================
# MESSAGING INSTANCES
# ============================================================

INSTANCES_HEADER = "🚀 <b>My WhatsApp Instances</b>\n\n"
NO_INSTANCES_MESSAGE = "You have not connected any number yet."
INSTANCES_LIST_HEADER = "<b>Your connected instances:</b>\n\n"
INSTANCE_LINE = "{icon} <b>{name}</b>\nID: <code>{id}</code>\nStatus: {status}\n\n"
INSTANCE_LIMIT_MESSAGE = "\n⚠️ <i>You have reached the limit of {max_instances} instances.</i>"
INSTANCE_LIMIT_REFUSED_MESSAGE = "⚠️ You have reached the limit of {max_instances} instances."

ASK_INSTANCE_NAME_MESSAGE = """🔗 <b>New Connection</b>

Type a <b>Name</b> to identify this instance (e.g. Sales, Support):"""

INSTANCE_CREATING_MESSAGE = "⏳ Creating instance and preparing the QR Code..."
INSTANCE_CREATED_MESSAGE = "✅ Instance <b>{name}</b> created successfully!"
INSTANCE_CREATE_FAILED_MESSAGE = "❌ Could not create the instance right now. Please try again later."
INSTANCE_NOT_FOUND_MESSAGE = "❌ Instance not found."

INSTANCE_MANAGE_MESSAGE = """⚙️ <b>Manage Instance: {name}</b>

ID: <code>{id}</code>
Status: {status}"""

CONNECTED_LABEL = "✅ Connected"
DISCONNECTED_LABEL = "🔴 Disconnected"

QR_GENERATING_MESSAGE = "⏳ Generating QR Code..."
QR_CAPTION = """📷 <b>Scan to connect</b>

<i>The status will update in a moment.</i>"""
QR_FAILED_MESSAGE = "❌ Could not generate the QR Code. Try again in a few seconds."
INSTANCE_DELETED_MESSAGE = "🗑️ Instance removed!"

# ============================================================
# AI CHAT
# ============================================================

AI_NOT_CONFIGURED_OWNER_MESSAGE = """⚠️ <b>AI not configured.</b>
Use /admin to add your API key."""

AI_NOT_CONFIGURED_USER_MESSAGE = "🤖 The administrator has not enabled my intelligence yet."

AI_FAILED_MESSAGE = "❌ An error occurred while processing your message."

# ============================================================
# MASTER CONSOLE
# ============================================================

MASTER_HOME_MESSAGE = """👑 <b>SaaS Master Panel</b>

Choose an option:"""

MASTER_NOT_CONFIGURED_MESSAGE = """⚠️ MASTER_ADMIN_ID is not configured. Set it to use this bot.
Use /my_id to find yours."""

MASTER_MY_ID_MESSAGE = "🆔 Your ID: <code>{chat_id}</code>"

MASTER_NO_TENANTS_MESSAGE = "No customers found."
MASTER_SELECT_TENANT_MESSAGE = "👥 <b>Select a customer:</b>"
MASTER_TENANT_NOT_FOUND_MESSAGE = "Customer not found (ID: {tenant_id})."

MASTER_TENANT_DETAIL_MESSAGE = """🏢 <b>Customer:</b> {name}
🆔 ID: {id}
📊 Status: {status}
▶️ Running: {running}
👥 Users: {max_users} max
💲 Price: {price}
📅 Expires on: {expiration}"""

MASTER_ASK_NAME_MESSAGE = """📝 <b>New Customer</b>

What is the customer/company name?"""
MASTER_ASK_TOKEN_MESSAGE = "🤖 What is their bot token?"
MASTER_INVALID_TOKEN_MESSAGE = "❌ Invalid token. Try again:"
MASTER_ASK_OWNER_MESSAGE = """👤 What is the owner's Telegram ID (chat id)?
(They will use it to access the /admin panel)"""
MASTER_CREATING_MESSAGE = "⏳ Creating tenant..."
MASTER_CREATED_MESSAGE = """✅ <b>Success!</b>
Customer <b>{name}</b> created (ID {id})."""

MASTER_ASK_LIMIT_MESSAGE = """👥 <b>Change User Limit (Customer ID {tenant_id})</b>

Type the new maximum number of users (e.g. 50):"""
MASTER_INVALID_INTEGER_MESSAGE = "❌ Invalid value. Type a whole number."
MASTER_LIMIT_SAVED_MESSAGE = "✅ Limit updated to <b>{limit} users</b>"

MASTER_ASK_PRICE_MESSAGE = """💲 <b>Change Fixed Price (Customer ID {tenant_id})</b>

Type the new amount (e.g. 99.90).
To go back to the global price, type 0."""
MASTER_INVALID_PRICE_MESSAGE = "❌ Invalid value. Type a number (e.g. 99.90)."
MASTER_PRICE_SAVED_MESSAGE = "✅ Price updated to <b>{price}</b>"
MASTER_PRICE_GLOBAL_LABEL = "DEFAULT (Global)"

MASTER_ASK_GLOBAL_PRICE_MESSAGE = """💲 <b>Current Global Price: R$ {price}</b>

Type the new amount for ALL customers without a fixed price (e.g. 129.90):"""
MASTER_GLOBAL_PRICE_SAVED_MESSAGE = """✅ <b>Global Price Updated!</b>
New amount: R$ {price}

(Customers without a fixed price pay this amount on their next renewal.)"""

MASTER_ASK_RENEW_MESSAGE = """📅 <b>Renew Subscription (Customer ID {tenant_id})</b>

Type how many days to add (e.g. 30):"""
MASTER_RENEWED_MESSAGE = """✅ Renewed for +{days} days.
New expiration: <b>{expiration}</b>"""

MASTER_TOGGLED_MESSAGE = "✅ Customer <b>{name}</b> is now {state}."
MASTER_ERROR_MESSAGE = "❌ Error: {error}"
MASTER_START_FAILED_MESSAGE = "⚠️ The bot could not be started: {error}"
MASTER_RUNNING_LABEL = "✅ Yes"
MASTER_STOPPED_LABEL = "⏹️ No"
MASTER_TENANT_BUTTON = "{icon} {name} (ID {id})"

# ============================================================
# BUTTON LABELS
# ============================================================

BUTTON_BACK = "🔙 Back"
BUTTON_CANCEL = "❌ Cancel"
BUTTON_INSTANCES = "🚀 My Instances"
BUTTON_BROADCAST = "📢 Mass Broadcast"
BUTTON_AFFILIATES = "🤝 Affiliates"
BUTTON_PLAN = "💎 Your Plan (Active)"
BUTTON_SUPPORT = "👤 Support / Help"
BUTTON_OWNER_PANEL = "👑 Admin Panel (Owner)"
BUTTON_SETUP_PAYMENT = "💳 Configure SyncPay"
BUTTON_SETUP_AI = "🧠 Configure AI"
BUTTON_SETUP_PROMPT = "🎭 Customize Prompt"
BUTTON_RENEW = "💸 Renew Subscription"
BUTTON_RELOAD = "🔄 Reload Bot"
BUTTON_ADD_INSTANCE = "➕ Connect New Number"
BUTTON_MANAGE_INSTANCE = "⚙️ Manage {name}"
BUTTON_QR = "📷 Generate QR Code"
BUTTON_DELETE_INSTANCE = "🗑️ Delete Instance"
BUTTON_MASTER_TENANTS = "👥 Manage Customers"
BUTTON_MASTER_NEW = "➕ New Customer"
BUTTON_MASTER_GLOBAL_PRICE = "💲 Change Global Price"
BUTTON_MASTER_LIMIT = "👥 Change Limit"
BUTTON_MASTER_PRICE = "💲 Set Fixed Price"
BUTTON_MASTER_RENEW = "📅 Renew Subscription"
BUTTON_MASTER_BLOCK = "🚫 Block"
BUTTON_MASTER_UNBLOCK = "✅ Unblock"

# ============================================================
# CALLBACK DATA
# ============================================================

# Separates an action from its argument, e.g. "inst_manage:user_42_123456"
CALLBACK_SEPARATOR = ":"

CB_CANCEL = "cancel"
CB_USER_MENU = "user_menu"
CB_INSTANCES = "inst_menu"
CB_INSTANCE_ADD = "inst_add"
CB_INSTANCE_MANAGE = "inst_manage"
CB_INSTANCE_QR = "inst_qr"
CB_INSTANCE_DELETE = "inst_del"
CB_BROADCAST = "menu_broadcast"
CB_AFFILIATES = "menu_affiliates"
CB_PLAN = "menu_plan"
CB_SUPPORT = "menu_support"
CB_OWNER_MENU = "owner_menu"
CB_OWNER_SETUP_PAYMENT = "owner_setup_payment"
CB_OWNER_SETUP_AI = "owner_setup_ai"
CB_OWNER_SETUP_PROMPT = "owner_setup_prompt"
CB_OWNER_RENEW = "owner_renew"
CB_OWNER_RELOAD = "owner_reload"
CB_SET_MODEL = "set_model"

CB_MASTER_HOME = "m_home"
CB_MASTER_LIST = "m_list"
CB_MASTER_NEW = "m_new"
CB_MASTER_GLOBAL_PRICE = "m_global_price"
CB_MASTER_MANAGE = "m_manage"
CB_MASTER_LIMIT = "m_limit"
CB_MASTER_PRICE = "m_price"
CB_MASTER_RENEW = "m_renew"
CB_MASTER_TOGGLE = "m_toggle"

# ============================================================
# BOT COMMANDS
# ============================================================

TENANT_BOT_COMMANDS = [
    ("start", "Start the conversation"),
    ("admin", "Owner panel (settings)"),
    ("id", "Show my Telegram ID"),
    ("cancel", "Cancel the current operation"),
]

MASTER_BOT_COMMANDS = [
    ("start", "Master panel"),
    ("my_id", "Show my Telegram ID"),
    ("cancel", "Cancel the current operation"),
]
