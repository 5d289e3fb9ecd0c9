"""
Integration Guides
==================

Copy-paste snippets for wiring DataFast into a site or backend. Each topic
maps to a constant template; the only substitution is the API base URL,
so the snippets follow whatever DataFast instance the server points at.
"""

from string import Template

GUIDE_TOPICS = (
    "tracking_script",
    "custom_goals_js",
    "goals_api",
    "payments_api",
    "stripe_checkout",
)

_TEMPLATES = {
    "tracking_script": Template("""## Install the DataFast tracking script

Add this to the <head> of every page:

```html
<script
  defer
  data-website-id="YOUR_WEBSITE_ID"
  data-domain="yourdomain.com"
  src="$base_url/js/script.js"
></script>
```

The script sets a `datafast_visitor_id` cookie. Read it on your backend to
attribute goals and payments to the right visitor.
"""),
    "custom_goals_js": Template("""## Track goals from the browser

```javascript
// Fire after the action completes (signup, demo request, ...)
window?.datafast("signup", { plan: "pro" });
```

Or declaratively, on any clickable element:

```html
<button data-fast-goal="initiate_checkout">Buy now</button>
```

Goal names: lowercase letters, numbers, underscores and hyphens, max 32 chars.
"""),
    "goals_api": Template("""## Create goals from your backend

```bash
curl -X POST $base_url/api/v1/goals \\
  -H "Authorization: Bearer YOUR_API_KEY" \\
  -H "Content-Type: application/json" \\
  -d '{
    "datafast_visitor_id": "VISITOR_ID_FROM_COOKIE",
    "name": "newsletter_signup",
    "metadata": {"source": "footer"}
  }'
```

Notes:
- The visitor needs at least one prior pageview (404 otherwise)
- Bot-flagged visitors are rejected (400)
- Metadata: max 10 properties, 32-char keys, 255-char string values
"""),
    "payments_api": Template("""## Record payments from your backend

```bash
curl -X POST $base_url/api/v1/payments \\
  -H "Authorization: Bearer YOUR_API_KEY" \\
  -H "Content-Type: application/json" \\
  -d '{
    "amount": 29.99,
    "currency": "USD",
    "transaction_id": "txn_123",
    "datafast_visitor_id": "VISITOR_ID_FROM_COOKIE",
    "email": "customer@example.com",
    "renewal": false
  }'
```

Notes:
- transaction_id must be unique; resending one is rejected as a duplicate
- Use amount 0 for free trials, and refunded=true for refunds
"""),
    "stripe_checkout": Template("""## Attribute Stripe Checkout revenue

Pass the visitor ID into the Checkout Session metadata:

```javascript
const session = await stripe.checkout.sessions.create({
  mode: "payment",
  line_items: [{ price: "price_123", quantity: 1 }],
  success_url: "https://yourdomain.com/thanks",
  metadata: {
    datafast_visitor_id: cookies.get("datafast_visitor_id"),
  },
});
```

With Stripe connected in DataFast, payments are attributed automatically.
Without it, call $base_url/api/v1/payments from your webhook handler
(see the payments_api guide).
"""),
}


def get_guide(topic: str, base_url: str) -> str:
    """Return the guide text for a topic.

    Raises:
        ValueError: unknown topic
    """
    template = _TEMPLATES.get(topic)
    if template is None:
        raise ValueError(f"Unknown guide topic '{topic}'. Available: {', '.join(GUIDE_TOPICS)}")
    return template.substitute(base_url=base_url.rstrip("/"))
