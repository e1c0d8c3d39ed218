"""Application package for the thesis-coaching backend.

Students buy coaching packs, pay for them in one or two tranches and
work on their thesis with an assigned coach. The subscription lifecycle
lives in `subscriptions`; the remaining modules follow the usual layout
of models, repositories, services and HTTP routes.
"""
