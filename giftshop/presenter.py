from typing import Callable, Optional

from markupsafe import Markup

from .config import DEFAULT_MAX_LENGTH
from .models import PHYSICAL_KINDS, Product

# no maxlength on the textarea: browsers count UTF-16 units, the limit is in code points
FIELD_TEMPLATE = Markup("""\
<div class="gift-message-wrapper" data-max-length="{max_length}">
  <div class="gift-message-field">
    <label for="gift_message">Gift Message (Optional)
      <span class="gift-message-help" title="Add a personal message to this gift">?</span>
    </label>
    <textarea id="gift_message" name="gift_message" class="gift-message-input"
              placeholder="Enter your gift message here..." rows="3">{value}</textarea>
    <div class="gift-message-counter" aria-live="polite">
      <span class="current-length">{length}</span>
      <span class="separator">/</span>
      <span class="max-length">{max_length}</span>
      <span class="remaining-text">characters</span>
    </div>
  </div>
</div>
""")


def default_eligible(product: Product) -> bool:
    return product is not None and product.kind in PHYSICAL_KINDS


class FieldPresenter:
    def __init__(self, max_length: int = DEFAULT_MAX_LENGTH, eligible: Optional[Callable] = None):
        self.max_length = max_length
        self.eligible = eligible or default_eligible

    def should_present(self, product: Product) -> bool:
        if product is None:
            return False
        return bool(self.eligible(product))

    def render(self, product: Product, current_value: str = "") -> Markup:
        if not self.should_present(product):
            return Markup("")
        value = current_value or ""
        return FIELD_TEMPLATE.format(max_length=self.max_length, value=value, length=len(value))
