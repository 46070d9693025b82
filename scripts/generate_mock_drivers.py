import numpy as np
import pandas as pd

from drivers.models import Language, VehicleClass
from drivers.policy import default_driver_policy
from drivers.pricing import max_allowed

# Rough fleet mix for a city dispatch area.
VEHICLE_MIX = {
    VehicleClass.BIKE: 0.45,
    VehicleClass.TUKTUK: 0.15,
    VehicleClass.CAR: 0.30,
    VehicleClass.BOX_LORRY: 0.06,
    VehicleClass.FLATBED_LORRY: 0.04,
}

EXTRA_LANGUAGES = [
    Language.ENGLISH,
    Language.JAVANESE,
    Language.SUNDANESE,
    Language.CHINESE,
    Language.ARABIC,
]


def generate_mock_drivers(count=100, output_file="mock_drivers.csv", seed=None):
    """
    Generates a driver roster for the dispatch simulation.
    Everyone speaks Indonesian; roughly a third speak one extra language.
    Rates are drawn inside the legal band of each vehicle class.
    """
    rng = np.random.default_rng(seed)
    policy = default_driver_policy()

    classes = list(VEHICLE_MIX)
    weights = list(VEHICLE_MIX.values())

    data = []
    for driver_index in range(count):
        vehicle_class = classes[rng.choice(len(classes), p=weights)]
        minimum = policy.legal_minimum_rates[vehicle_class]
        maximum = max_allowed(vehicle_class, policy)

        languages = [Language.INDONESIAN.value]
        if rng.random() < 0.35:
            languages.append(EXTRA_LANGUAGES[rng.integers(0, len(EXTRA_LANGUAGES))].value)

        hourly = vehicle_class in policy.minimum_hourly_rates and rng.random() < 0.4

        data.append({
            "driver_id": f"DRV-{str(driver_index + 1).zfill(3)}",
            "name": f"Driver {driver_index + 1}",
            "vehicle_class": vehicle_class.value,
            "rating": np.round(rng.uniform(3.8, 5.0), 1),
            # 80% online, 20% offline
            "is_online": bool(rng.random() < 0.8),
            "custom_rate": int(rng.integers(minimum // 100, maximum // 100 + 1)) * 100,
            "offers_hourly_rental": hourly,
            "languages": ";".join(languages),
        })

    df = pd.DataFrame(data)
    if output_file:
        df.to_csv(output_file, index=False)
        print(f"Generated {count} mock drivers into '{output_file}'")

        print("\nFleet mix:")
        for name, fleet_count in df["vehicle_class"].value_counts().items():
            print(f"  {name}: {fleet_count} drivers")
    return df


if __name__ == "__main__":
    generate_mock_drivers()
