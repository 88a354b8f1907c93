"""Deal intake wizard -- step state machine, entity resolution, pricing cascade, payloads.

Provides the WizardController (step gating and the accumulated DealDraft),
EntityResolver and DebouncedSearchClient (company/customer registry lookup),
CategoryServiceCache, PricingEngine and PackageResolver (the dependent
catalog fetches), and PayloadComposer (create/update submission).
"""
