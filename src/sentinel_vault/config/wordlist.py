"""
Fixed word list for export passphrases.

256 distinct lowercase words, so each word adds 8 bits of entropy and
a 16 word passphrase carries 128 bits.
"""

PASSPHRASE_WORDLIST = (
    "apple", "banana", "orange", "grape", "kiwi", "mango", "pear", "peach",
    "plum", "cherry", "lemon", "lime", "melon", "berry", "coconut", "pineapple",
    "river", "ocean", "lake", "mountain", "valley", "forest", "desert", "island",
    "cloud", "rain", "snow", "wind", "storm", "thunder", "sunset", "sunrise",
    "star", "moon", "planet", "galaxy", "universe", "rocket", "satellite", "comet",
    "tiger", "lion", "bear", "wolf", "fox", "deer", "rabbit", "squirrel",
    "eagle", "hawk", "owl", "falcon", "sparrow", "robin", "parrot", "peacock",
    "blue", "red", "green", "yellow", "purple", "pink", "brown", "black",
    "white", "gray", "silver", "gold", "bronze", "copper", "platinum", "anchor",
    "arrow", "autumn", "badge", "bamboo", "barrel", "basket", "beacon", "bell",
    "bicycle", "blanket", "bottle", "bridge", "bucket", "butter", "cabin", "cactus",
    "camera", "candle", "canoe", "canyon", "carpet", "castle", "cedar", "chalk",
    "chapel", "circle", "citrus", "clover", "coffee", "compass", "coral", "cotton",
    "crane", "crystal", "cup", "dance", "dawn", "delta", "diamond", "dolphin",
    "dragon", "dream", "drum", "dune", "echo", "ember", "engine", "falls",
    "feather", "fern", "fiddle", "field", "flame", "flute", "fountain", "frost",
    "garden", "garnet", "glacier", "globe", "granite", "harbor", "harvest", "hazel",
    "helmet", "hill", "honey", "horizon", "iceberg", "indigo", "iron", "ivory",
    "jacket", "jade", "jasmine", "jungle", "kettle", "kingdom", "ladder", "lantern",
    "laser", "leaf", "lighthouse", "lily", "linen", "lotus", "magnet", "maple",
    "marble", "meadow", "meteor", "mirror", "mist", "mosaic", "moss", "needle",
    "nest", "nickel", "noble", "nutmeg", "oak", "oasis", "olive", "onyx",
    "opal", "orbit", "orchid", "otter", "paddle", "palace", "panda", "paper",
    "pebble", "pepper", "piano", "pilot", "pine", "pixel", "pocket", "pond",
    "poppy", "prairie", "prism", "pumpkin", "quartz", "quill", "radar", "raven",
    "reef", "ribbon", "ridge", "rose", "ruby", "saddle", "saffron", "sail",
    "salmon", "sand", "sapphire", "scarf", "shadow", "shell", "shore", "signal",
    "slate", "sonic", "spark", "spice", "spiral", "spruce", "summit", "swan",
    "tablet", "temple", "thistle", "timber", "topaz", "torch", "tower", "trail",
    "tulip", "tundra", "turtle", "umbrella", "velvet", "violet", "voyage", "walnut",
    "whale", "willow", "window", "winter", "zebra", "acorn", "atlas", "breeze",
    "cobalt", "ginger", "lagoon", "nebula", "pearl", "rhythm", "sequoia", "tango",
)
