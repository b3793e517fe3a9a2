"""Services: conversation storage and campaign platform clients."""
