"""MongoDB client connections and the JSON codec for requests."""