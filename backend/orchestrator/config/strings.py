# /orchestrator/config/strings.py

# This file contains all user-facing strings, making them easy to manage,
# update, and eventually localize without changing application logic.

FALLBACK_REPLY = "Thanks for your message! We're looking into it and will get back to you shortly."

COMPLETION_UNAVAILABLE = "I'm sorry, I'm having trouble connecting. Could you rephrase your question?"

RESPONSE_GENERATION_ERROR = "I'm sorry, I ran into a problem while preparing the answer."

OPERATOR_GREETING = (
    "Hi! I'm the virtual assistant of {business_name}. How can I help you today? "
    "I can fetch data or prepare drafts for you, just tell me what you need."
)

OPERATOR_GREETING_CAPABILITIES = ["create drafts", "fetch data", "manage the console"]

CUSTOMER_WELCOME = "Welcome to {business_name}! How can I help you today?"

CUSTOMER_WELCOME_BACK = "Welcome back to {business_name}! Nice to hear from you again."

CROSS_CHANNEL_GREETING = (
    "Welcome back! We see you've talked to us before on {previous_platform}, "
    "so we'll pick up right where you left off."
)

# Autonomous workflow outcomes
WORKFLOW_SUCCESS = "Your request has been completed successfully!"

WORKFLOW_FAILURE = (
    "I'm sorry, there was a problem processing your request. "
    "Please contact a coordinator."
)

BUSINESS_NOT_FOUND = "I'm sorry, I couldn't find the information about this business or location."
BUSINESS_NOT_FOUND_NOTIFICATION = "Business or location not found"

NO_INSTRUCTIONS = (
    "I'm sorry, I can't process this request automatically. "
    "Please contact a coordinator."
)
NO_INSTRUCTIONS_NOTIFICATION = "No instructions found for this request"

ESCALATION_RESPONSE = (
    "Your request has been forwarded to a coordinator, who will get back to you shortly."
)
ESCALATION_NOTIFICATION = "Request forwarded to coordinator for manual processing"

CONFIRMATION_MESSAGE = (
    "Your request at {business_name} has been registered. "
    "We'll confirm the details shortly."
)

DEFAULT_NOTIFICATION = "Autonomous action {action} completed for {user} via {source}"
