from arkadex.client.rest import ProviderError, RestClient
from arkadex.client.ark_provider import ArkInfo, ArkProvider
from arkadex.client.introspector import FinalizationResult, IntrospectorInfo, IntrospectorProvider
